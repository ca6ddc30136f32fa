"""
Evaluate Router
===============

API endpoints for evaluating hook records and inspecting the catalog.
The engine is built once at startup (see main.py) and shared by every request.
"""

import sys
from pathlib import Path

from fastapi import APIRouter, Request
from fastapi.concurrency import run_in_threadpool

from ..schemas import CatalogResponse, CategoryInfo, DecisionResponse

# Ensure root is on sys.path for the guard modules when run from a checkout
ROOT_DIR = Path(__file__).parent.parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from security import PolicyEngine, evaluate_safely

router = APIRouter(prefix="/api", tags=["guard"])


def _engine(request: Request) -> PolicyEngine:
    return request.app.state.engine


@router.post("/evaluate", response_model=DecisionResponse)
async def evaluate_record(request: Request):
    """Evaluate one PreToolUse hook record.

    The body is read raw: anything that is not a JSON object is allowed
    (fail-open) rather than rejected.
    """
    body = await request.body()
    # Matching is CPU-bound; keep it off the event loop
    decision = await run_in_threadpool(evaluate_safely, body, engine=_engine(request))
    return DecisionResponse(**decision.to_record())


@router.get("/catalog", response_model=CatalogResponse)
async def get_catalog(request: Request):
    """List the categories in precedence order."""
    catalog = _engine(request).catalog
    return CatalogResponse(
        version=catalog.version,
        protected_containers=list(catalog.protected_containers),
        protected_processes=list(catalog.protected_processes),
        protected_paths=list(catalog.protected_paths),
        categories=[CategoryInfo(**entry) for entry in catalog.describe()],
    )
