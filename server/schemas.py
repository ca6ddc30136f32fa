"""
Pydantic Schemas
================

Response models for the evaluation API endpoints.

Request bodies are not modelled: the evaluate endpoint reads the raw hook
record itself so malformed input can fail open instead of returning 422.
"""

from pydantic import BaseModel, Field


class DecisionResponse(BaseModel):
    """Outcome of evaluating one hook record."""
    allowed: bool
    category: str | None = None
    group: str | None = None
    message: str | None = None
    via_indirection: bool = False


class CategoryInfo(BaseModel):
    """One rule category, as listed by the catalog endpoint."""
    id: str
    group: str
    title: str
    reason: str
    suggestion: str
    patterns: list[str] = Field(default_factory=list)


class CatalogResponse(BaseModel):
    """The rule catalog the service is enforcing."""
    version: int
    protected_containers: list[str]
    protected_processes: list[str]
    protected_paths: list[str]
    categories: list[CategoryInfo]
