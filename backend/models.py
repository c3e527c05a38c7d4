"""Pydantic models for API requests and responses."""

from typing import Optional
from pydantic import BaseModel, Field


# ═══════════════════════════════════════════════════════
# Project Models
# ═══════════════════════════════════════════════════════

class ProjectCreate(BaseModel):
    """Create project request."""
    name: str = Field(..., description="Unique human-readable project name")
    external_url: str = Field("", description="Link to the project's CI or repository")


class ProjectLookup(BaseModel):
    """Lookup project by write token."""
    token: str = Field(..., description="Project write token")


class ProjectOut(BaseModel):
    """Project without secrets."""
    id: str = Field(..., description="Project ID")
    name: str = Field(..., description="Project name")
    external_url: str = Field(..., description="External project URL")
    created_at: str = Field(..., description="Creation timestamp (ISO format)")


class ProjectCreated(ProjectOut):
    """Project with tokens, returned only once at creation."""
    token: str = Field(..., description="Write token for builds and runs")
    read_token: str = Field(..., description="Read token")


# ═══════════════════════════════════════════════════════
# Build Models
# ═══════════════════════════════════════════════════════

class BuildCreate(BaseModel):
    """Create build request."""
    branch: str = Field("", description="Git branch")
    hash: str = Field("", description="Commit hash")
    commit_message: str = Field("", description="Commit subject")
    author: str = Field("", description="Commit author")
    external_build_url: str = Field("", description="Link to the CI job")


class BuildOut(BaseModel):
    """Build response."""
    id: str
    project_id: str
    branch: str
    hash: str
    commit_message: str
    author: str
    external_build_url: str
    created_at: str = Field(..., description="Creation timestamp (ISO format)")


# ═══════════════════════════════════════════════════════
# Run Models
# ═══════════════════════════════════════════════════════

class RunCreate(BaseModel):
    """Create run request."""
    url: Optional[str] = Field(None, description="Audited URL (defaults to requestedUrl)")
    lhr: str = Field(..., description="Serialized audit report (JSON text)")


class RunOut(BaseModel):
    """Run response."""
    id: str
    project_id: str
    build_id: str
    url: str
    lhr: str = Field(..., description="Serialized audit report (JSON text)")
    created_at: str = Field(..., description="Creation timestamp (ISO format)")


# ═══════════════════════════════════════════════════════
# Health Models
# ═══════════════════════════════════════════════════════

class HealthResponse(BaseModel):
    """Health check response."""
    status: str = Field(..., description="Service status")
    storage: Optional[dict] = Field(None, description="Storage backend status")
