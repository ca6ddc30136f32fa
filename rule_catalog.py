"""
Rule Catalog
============

The ordered catalog of dangerous-command categories consulted by the
policy engine in ``security.py``.

The catalog is declared as plain data (``DEFAULT_CATALOG``) and compiled once
into an immutable ``RuleCatalog``. Order is precedence: the first category
whose patterns match a command decides the outcome, so more specific rules
(protected containers) sit before broader ones (force-kill signals).

Patterns are case-insensitive regular expressions searched anywhere in the
command text. They may contain placeholders that are filled from the
protected name sets when the catalog is built:

    <containers>  protected container / compose service names
    <processes>   session-critical process names
    <paths>       protected root paths

Matching cost is linear in the command length: every pattern looks at most
SCAN_WINDOW characters past its anchor word, and commands longer than
MAX_MATCH_CHARS are matched on their head and tail only.

Indirection is reported separately from the match. Wrappers (ssh, docker
exec, sh -c, sudo ...) are checked first; plain statement chaining with
``;``, ``&&``, ``||`` or ``|`` is reported as ``chained`` when no wrapper is
present.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

logger = logging.getLogger(__name__)

CATALOG_VERSION = 1

# Category groups, in the order they appear in the built-in catalog
GROUPS = (
    "container_lifecycle",
    "system_power",
    "process_kill",
    "destructive_filesystem",
    "permission_destruction",
    "resource_exhaustion",
)

DEFAULT_PROTECTED_CONTAINERS = (
    "vai",
    "claude",
    "claude-code",
    "devcontainer",
)

DEFAULT_PROTECTED_PROCESSES = (
    "claude",
    "node",
    "bun",
    "python",
    "python3",
    "tmux",
    "screen",
    "sshd",
    "mosh-server",
    "ttyd",
)

DEFAULT_PROTECTED_PATHS = (
    "/",
    "/*",
    "~",
    "~/",
    "$HOME",
    "${HOME}",
    "/home",
    "/root",
    "/etc",
    "/usr",
    "/var",
    "/bin",
    "/sbin",
    "/lib",
    "/boot",
    "/opt",
    "/srv",
    "/workspace",
)

PLACEHOLDERS = ("containers", "processes", "paths")
_PLACEHOLDER_RE = re.compile(r"<(containers|processes|paths)>")

# Longest command text matched; longer commands are matched on their head and tail
MAX_MATCH_CHARS = 32 * 1024
# Longest stretch any pattern scans past its anchor word. Every repeat in a
# pattern is bounded so matching stays linear in the command length.
SCAN_WINDOW = 200

# Reusable pattern fragments
_STMT = r"[^;&|\n]{0,%d}" % SCAN_WINDOW  # stays inside one shell statement
_SCAN = _STMT + "?"
_PIPED = r"[^;&\n]{0,%d}" % SCAN_WINDOW  # may cross a pipe
_OPTS = r"(?:-\S{1,40}\s+){0,8}"
_FLAGS_TO_END = r"""(?:\s+-[^\s;&|]{1,40}){0,12}\s*(?=$|[;&|"'`)])"""
_END = r"""(?=$|[\s;&|"'`)])"""
_NAME_START = r"(?<![\w.])"
_NAME_END = r"(?![\w.])"
_RUNTIME = r"\b(?:docker|podman|nerdctl)(?:-compose)?\b"
_COMPOSE = r"\b(?:docker|podman|nerdctl)(?:-compose\b|\s+compose\b)"
_RECURSIVE = r"(?=" + _STMT + r"\s-(?:[a-z]{0,8}r[a-z]{0,8}|-recursive)\b)"
_PROTECTED_PATH = r"""["']?(?:<paths>)/?\*?["']?""" + _END
_ROOT_LEVEL_PATH = r"""["']?(?:/[\w.-]{0,64}|~|\$HOME|\$\{HOME\})/?\*?["']?""" + _END
_BLOCK_DEVICE = r"/dev/(?:sd[a-z]|hd[a-z]|vd[a-z]|xvd[a-z]|nvme\d|mmcblk\d|disk\d|md\d|dm-\d|mapper/|root\b)"
_CMD_START = r"""(?:^|[\s;&|(`"'/])"""

# Label reported when the only indirection is statement chaining
CHAINED_LABEL = "chained"

# Ordered list of (label, pattern) used to flag wrapped or chained commands
INDIRECTION_PATTERNS = (
    ("ssh", r"\bssh\b\s+\S"),
    ("docker exec", r"\b(?:docker|podman|nerdctl)(?:\s+container)?\s+exec\b"),
    ("kubectl exec", r"\bkubectl\s+(?:" + _STMT + r"\s)?exec\b"),
    ("shell -c", r"\b(?:ba|z|da|k)?sh\s+(?:-\w{1,20}\s+){0,8}-c\b"),
    ("eval", r"(?:^|[\s;&|(])eval\s"),
    ("sudo", r"(?:^|[\s;&|(])(?:sudo|doas)\s"),
    # Lowest precedence: any statement separator (";", "&&", "||", "|", "&", newline)
    (CHAINED_LABEL, r"&&|\|\||[;|\n]|(?<![<>&])&(?![&>])"),
)

DEFAULT_CATALOG = {
    "version": CATALOG_VERSION,
    "categories": [
        # -- Container lifecycle ------------------------------------------------
        {
            "id": "protected-container-lifecycle",
            "group": "container_lifecycle",
            "title": "Protected container lifecycle",
            "patterns": [
                _RUNTIME + _SCAN + r"\s(?:restart|stop|rm|kill|rebuild|recreate|pause)\b"
                + _SCAN + _NAME_START + r"(?:<containers>)" + _NAME_END,
            ],
            "reason": (
                "The agent runs inside a protected container. Restarting, stopping or "
                "removing it terminates the agent's own session mid-task."
            ),
            "suggestion": (
                "Ask the operator to restart the container from outside the session, "
                "or restart a specific non-protected service instead."
            ),
        },
        {
            "id": "compose-blanket-down-up",
            "group": "container_lifecycle",
            "title": "Blanket container orchestration",
            "patterns": [
                _COMPOSE + _SCAN + r"\sdown\b",
                # up / restart / stop ... with flags only: acts on every service
                _COMPOSE + _SCAN + r"\s(?:up|restart|stop|kill|rm|pause)(?![\w-])" + _FLAGS_TO_END,
                r"\b(?:docker|podman)\s+(?:container\s+)?(?:stop|kill|restart|rm)\b"
                + _STMT + r"(?:\$\(|`)\s*(?:docker|podman)\s+(?:container\s+)?ps\b",
                r"\b(?:docker|podman)\s+(?:container\s+)?ps\b" + _PIPED + r"\|\s*xargs\s+" + _OPTS
                + r"(?:docker|podman)\s+(?:container\s+)?(?:stop|kill|restart|rm)\b",
            ],
            "reason": (
                "Bringing every service down or up at once recreates the container the "
                "agent is running in, ending the session."
            ),
            "suggestion": (
                "Name the specific services to restart (for example "
                "`docker compose restart postgres`), excluding the agent's container."
            ),
        },
        {
            "id": "compose-rebuild",
            "group": "container_lifecycle",
            "title": "Container rebuild",
            "patterns": [
                _COMPOSE + _SCAN + r"\s--(?:build|force-recreate|renew-anon-volumes|always-recreate-deps)(?![\w-])",
            ],
            "reason": (
                "Rebuild and force-recreate flags replace running containers, including "
                "the one hosting the agent session."
            ),
            "suggestion": (
                "Build images with `docker compose build <service>` and let the operator "
                "decide when to recreate containers."
            ),
        },
        {
            "id": "container-daemon-restart",
            "group": "container_lifecycle",
            "title": "Container runtime restart",
            "patterns": [
                r"\bsystemctl\s+" + _OPTS + r"(?:restart|stop|kill|try-restart|reload-or-restart)\s+"
                + _OPTS + r"(?:docker|containerd|podman)(?:\.service|\.socket)?\b",
                r"\bservice\s+(?:docker|containerd|podman)\s+(?:restart|stop)\b",
                r"\b(?:pkill|killall)\b" + _STMT + r"\b(?:dockerd|containerd)\b",
            ],
            "reason": (
                "Restarting the container daemon stops every container on the host, "
                "including the agent's own."
            ),
            "suggestion": "Leave daemon restarts to the operator; restart individual services instead.",
        },
        # -- System power -------------------------------------------------------
        {
            "id": "system-power",
            "group": "system_power",
            "title": "System power control",
            "patterns": [
                _CMD_START + r"(?:reboot|shutdown|poweroff|halt)(?![\w-])",
                _CMD_START + r"(?:tel)?init\s+[06](?![\w.])",
            ],
            "reason": "Rebooting or powering off the host terminates every session running on it.",
            "suggestion": "Ask the operator to schedule a reboot if one is genuinely required.",
        },
        # -- Process termination ------------------------------------------------
        {
            "id": "session-process-kill",
            "group": "process_kill",
            "title": "Session-critical process kill",
            "patterns": [
                r"\b(?:pkill|killall)\b" + _SCAN + _NAME_START + r"(?:<processes>)" + _NAME_END,
                r"\bkill\b" + _STMT + r"(?:\$\(|`)\s*(?:pgrep|pidof)\b[^)`]{0,%d}?" % SCAN_WINDOW
                + _NAME_START + r"(?:<processes>)" + _NAME_END,
                r"\bpgrep\b" + _PIPED + "?" + _NAME_START + r"(?:<processes>)" + _NAME_END
                + _PIPED + r"\|\s*xargs\s+" + _OPTS + r"kill\b",
                r"\btmux\s+" + _OPTS + r"kill-(?:server|session)\b",
            ],
            "reason": (
                "These processes host the agent runtime, its terminal multiplexer or its "
                "session bridge; killing them ends the session abruptly."
            ),
            "suggestion": "Kill the specific PID you started (`kill <pid>`) instead of matching by name.",
        },
        {
            "id": "force-kill-signal",
            "group": "process_kill",
            "title": "Unconditional force kill",
            "patterns": [
                r"\b(?:kill|pkill|killall)\s+(?:" + _STMT + r"\s)?"
                r"(?:-9|-kill|-sigkill|-s\s*(?:9|kill|sigkill)|--signal[\s=](?:9|kill|sigkill))(?![\w-])",
            ],
            "reason": "SIGKILL cannot be trapped; a mistyped target dies without cleanup.",
            "suggestion": "Send SIGTERM first (`kill <pid>`) and confirm the target before escalating.",
        },
        # -- Destructive filesystem ---------------------------------------------
        {
            "id": "recursive-delete-protected-path",
            "group": "destructive_filesystem",
            "title": "Recursive delete of a protected path",
            "patterns": [
                r"\brm\b" + _RECURSIVE + _STMT + r"\s" + _PROTECTED_PATH,
            ],
            "reason": "Recursively deleting a root-level or home path is irreversible data loss.",
            "suggestion": "Delete the specific subdirectory you created, using its full path.",
        },
        {
            "id": "raw-device-write",
            "group": "destructive_filesystem",
            "title": "Raw block device write",
            "patterns": [
                r"\bdd\b" + _STMT + r"""\bof=["']?/dev/(?!null\b|zero\b|stdout\b|stderr\b|fd/|tty)""",
                r""">\s*["']?""" + _BLOCK_DEVICE,
                r"\b(?:shred|wipe|blkdiscard)\b" + _STMT + _BLOCK_DEVICE,
            ],
            "reason": "Writing raw data over a block device destroys the filesystem on it.",
            "suggestion": "Write to a regular file instead; device-level work needs the operator.",
        },
        {
            "id": "filesystem-format",
            "group": "destructive_filesystem",
            "title": "Filesystem format",
            "patterns": [
                _CMD_START + r"(?:mkfs(?:\.\w+)?|mke2fs|mkntfs|newfs|wipefs)(?![\w-])",
                r"\bmkswap\s+" + _OPTS + r"/dev/",
                r"\bdiskutil\s+(?:erase\w*|partitionDisk|zeroDisk|randomDisk)\b",
            ],
            "reason": "Formatting a device wipes every file on it.",
            "suggestion": "Ask the operator to prepare storage; never format from inside the session.",
        },
        # -- Permission / ownership destruction ---------------------------------
        {
            "id": "permission-strip",
            "group": "permission_destruction",
            "title": "Permission strip on a root-level path",
            "patterns": [
                r"\bchmod\b" + _SCAN + r"\s(?:0{3,4}|[ugoa]{0,4}-rwx|[ugoa]{1,4}=)\s+(?:" + _STMT + r"\s)?"
                + _ROOT_LEVEL_PATH,
            ],
            "reason": "Removing every permission bit from a root-level path locks users and services out.",
            "suggestion": "Change permissions on the specific file you own, with an explicit mode.",
        },
        {
            "id": "recursive-ownership-change",
            "group": "permission_destruction",
            "title": "Recursive ownership change",
            "patterns": [
                r"\bch(?:own|grp)\b" + _RECURSIVE + _STMT + r"\s" + _PROTECTED_PATH,
            ],
            "reason": (
                "Recursively reassigning ownership of a protected tree can lock the agent "
                "or the user out of its own workspace."
            ),
            "suggestion": "Change ownership of the specific files that need it, without -R on a root path.",
        },
        # -- Resource exhaustion ------------------------------------------------
        {
            "id": "fork-bomb",
            "group": "resource_exhaustion",
            "title": "Fork bomb",
            "patterns": [
                r"([\w:.]{1,64})\s*\(\)\s*\{\s*\1\s*\|\s*\1\s*&\s*\}\s*(?:;\s*)?\1",
                r"while\s*(?:true|1)\s*:\s*os\.fork\(\)",
            ],
            "reason": "A self-replicating job exhausts the process table and starves the host.",
            "suggestion": "Do not run this. Use a bounded worker pool for parallel work.",
        },
        {
            "id": "background-spawn-loop",
            "group": "resource_exhaustion",
            "title": "Unbounded background spawn loop",
            "patterns": [
                r"\b(?:while\s+(?:true|:|\[\s*1\s*\]|\(\(\s*1\s*\)\))|until\s+(?:false|!\s*:)"
                r"|for\s*\(\(\s*;\s*;\s*\)\))\s*(?:;\s*)?do\b[^\n]{0,400}?(?<![&>])&(?![&>])[^\n]{0,400}?\bdone\b",
            ],
            "reason": "An infinite loop that backgrounds a job each iteration spawns processes without bound.",
            "suggestion": "Bound the loop, or wait for each job before starting the next.",
        },
    ],
}


def clip_for_matching(command_text: str) -> str:
    """
    Bound the text the patterns run over.

    Commands up to MAX_MATCH_CHARS are returned unchanged. Longer ones (large
    heredocs, generated scripts) keep their first and last halves joined by a
    newline, which also ends any statement cut in the middle.
    """
    if len(command_text) <= MAX_MATCH_CHARS:
        return command_text
    half = MAX_MATCH_CHARS // 2
    return command_text[:half] + "\n" + command_text[-half:]


class CatalogError(Exception):
    """Raised when a catalog definition cannot be compiled."""


@dataclass(frozen=True)
class RuleCategory:
    """One category of dangerous operation."""

    id: str
    group: str
    title: str
    patterns: tuple[re.Pattern, ...]
    reason: str
    suggestion: str

    def matches(self, command_text: str) -> bool:
        return any(pattern.search(command_text) for pattern in self.patterns)


@dataclass(frozen=True)
class RuleCatalog:
    """
    Immutable, ordered sequence of rule categories.

    Built once per process and shared read-only between evaluations, so it is
    safe to use from concurrent requests without locking.
    """

    version: int
    categories: tuple[RuleCategory, ...]
    protected_containers: tuple[str, ...] = ()
    protected_processes: tuple[str, ...] = ()
    protected_paths: tuple[str, ...] = ()
    indirection: tuple[tuple[str, re.Pattern], ...] = ()

    def __iter__(self) -> Iterator[RuleCategory]:
        return iter(self.categories)

    def __len__(self) -> int:
        return len(self.categories)

    def get(self, category_id: str) -> Optional[RuleCategory]:
        for category in self.categories:
            if category.id == category_id:
                return category
        return None

    def first_match(self, command_text: str) -> Optional[RuleCategory]:
        """Return the first category in catalog order that matches, or None."""
        text = clip_for_matching(command_text)
        for category in self.categories:
            if category.matches(text):
                return category
        return None

    def detect_indirection(self, command_text: str) -> Optional[str]:
        """Return the label of the first wrapper found in the command, or None."""
        # The head and tail of a long command are searched apart so the
        # newline joining them is not taken for chaining
        pieces = [command_text]
        if len(command_text) > MAX_MATCH_CHARS:
            half = MAX_MATCH_CHARS // 2
            pieces = [command_text[:half], command_text[-half:]]
        for label, pattern in self.indirection:
            if any(pattern.search(piece) for piece in pieces):
                return label
        return None

    def describe(self) -> list[dict]:
        """Plain-data view of the catalog for the CLI and HTTP API."""
        return [
            {
                "id": category.id,
                "group": category.group,
                "title": category.title,
                "reason": category.reason,
                "suggestion": category.suggestion,
                "patterns": [pattern.pattern for pattern in category.patterns],
            }
            for category in self.categories
        ]


def _alternation(values: Iterable[str]) -> str:
    # Longest first so "python3" is tried before "python"
    unique = sorted(set(values), key=lambda v: (-len(v), v))
    return "|".join(re.escape(v) for v in unique)


def _compile_pattern(source: str, category_id: str, fills: dict[str, str]) -> re.Pattern:
    def substitute(match: re.Match) -> str:
        name = match.group(1)
        if not fills.get(name):
            raise CatalogError(f"Category '{category_id}': placeholder <{name}> has no values")
        return fills[name]

    expanded = _PLACEHOLDER_RE.sub(substitute, source)
    try:
        return re.compile(expanded, re.IGNORECASE)
    except re.error as e:
        raise CatalogError(f"Category '{category_id}': invalid pattern {source!r}: {e}") from e


def _compile_category(entry: dict, fills: dict[str, str], seen_ids: set[str]) -> RuleCategory:
    if not isinstance(entry, dict):
        raise CatalogError("Catalog categories must be mappings")

    for field_name in ("id", "title", "reason", "suggestion"):
        value = entry.get(field_name)
        if not isinstance(value, str) or not value.strip():
            raise CatalogError(f"Catalog category {entry.get('id', '?')!r} has invalid '{field_name}'")

    category_id = entry["id"].strip()
    if category_id in seen_ids:
        raise CatalogError(f"Duplicate catalog category id '{category_id}'")
    seen_ids.add(category_id)

    patterns = entry.get("patterns")
    if isinstance(patterns, str):
        patterns = [patterns]
    if not isinstance(patterns, list) or not patterns:
        raise CatalogError(f"Category '{category_id}' must have at least one pattern")
    for pattern in patterns:
        if not isinstance(pattern, str) or not pattern:
            raise CatalogError(f"Category '{category_id}' has a non-string pattern")

    group = entry.get("group", "custom")
    if not isinstance(group, str) or not group:
        raise CatalogError(f"Category '{category_id}' has invalid 'group'")

    return RuleCategory(
        id=category_id,
        group=group,
        title=entry["title"],
        patterns=tuple(_compile_pattern(p, category_id, fills) for p in patterns),
        reason=entry["reason"],
        suggestion=entry["suggestion"],
    )


def build_catalog(
    definition: Optional[dict] = None,
    protected_containers: Iterable[str] = (),
    protected_processes: Iterable[str] = (),
    protected_paths: Iterable[str] = (),
    extra_categories: Iterable[dict] = (),
) -> RuleCatalog:
    """
    Compile a catalog definition into an immutable RuleCatalog.

    Protected names are merged with the built-in defaults; extra categories
    are appended after the definition's own categories so built-in
    precedence is never displaced.

    Args:
        definition: Catalog data (``{"version": 1, "categories": [...]}``).
                    Defaults to ``DEFAULT_CATALOG``.
        protected_containers: Additional protected container names
        protected_processes: Additional session-critical process names
        protected_paths: Additional protected root paths
        extra_categories: Additional category mappings, checked last

    Returns:
        The compiled catalog

    Raises:
        CatalogError: If the definition is malformed or a pattern does not compile
    """
    if definition is None:
        definition = DEFAULT_CATALOG

    if not isinstance(definition, dict):
        raise CatalogError("Catalog definition must be a mapping")
    version = definition.get("version")
    if version != CATALOG_VERSION:
        raise CatalogError(f"Unsupported catalog version: {version!r} (expected {CATALOG_VERSION})")

    categories = definition.get("categories")
    if not isinstance(categories, list) or not categories:
        raise CatalogError("Catalog definition must contain a non-empty 'categories' list")

    containers = tuple(sorted(set(DEFAULT_PROTECTED_CONTAINERS) | set(protected_containers)))
    processes = tuple(sorted(set(DEFAULT_PROTECTED_PROCESSES) | set(protected_processes)))
    paths = tuple(sorted(set(DEFAULT_PROTECTED_PATHS) | set(protected_paths)))
    fills = {
        "containers": _alternation(containers),
        "processes": _alternation(processes),
        "paths": _alternation(paths),
    }

    seen_ids: set[str] = set()
    compiled = [_compile_category(entry, fills, seen_ids) for entry in categories]
    compiled.extend(_compile_category(entry, fills, seen_ids) for entry in extra_categories)

    indirection = tuple((label, re.compile(pattern, re.IGNORECASE)) for label, pattern in INDIRECTION_PATTERNS)

    logger.debug(
        "Built rule catalog v%s with %d categories (%d containers, %d processes, %d paths)",
        version,
        len(compiled),
        len(containers),
        len(processes),
        len(paths),
    )

    return RuleCatalog(
        version=version,
        categories=tuple(compiled),
        protected_containers=containers,
        protected_processes=processes,
        protected_paths=paths,
        indirection=indirection,
    )
