"""
Shared Environment Variable Constants
======================================

Single source of truth for environment variables read by Session Guard.
Imported by ``guard_config.py`` (config resolution), the hook entry points
and ``server/main.py`` so the names are not duplicated.

Values may also come from a ``.env`` file; the entry points call
``load_dotenv()`` before reading any of them.
"""

HOME_ENV_VAR = "SESSION_GUARD_HOME"                # User-level config directory (default ~/.session-guard)
LOG_LEVEL_ENV_VAR = "SESSION_GUARD_LOG_LEVEL"      # Logging level for hook processes (default WARNING)
READ_TIMEOUT_ENV_VAR = "SESSION_GUARD_READ_TIMEOUT"  # Seconds to wait for hook input on stdin
REPO_DIR_ENV_VAR = "SESSION_GUARD_REPO_DIR"        # Repository checked by the update notifier
ALLOW_REMOTE_ENV_VAR = "SESSION_GUARD_ALLOW_REMOTE"  # Let the HTTP service accept non-localhost clients
PROJECT_DIR_ENV_VAR = "CLAUDE_PROJECT_DIR"         # Set by the host runtime for hook processes

DEFAULT_READ_TIMEOUT = 1.0
DEFAULT_LOG_LEVEL = "WARNING"
