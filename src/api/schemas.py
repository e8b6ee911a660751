"""
Request and response models for the admin API.
"""

from pydantic import BaseModel, Field, field_validator, ConfigDict
from typing import Optional, List, Dict, Any

from ..core.schema import IMMUTABLE_FIELDS


class ChangesetModel(BaseModel):
    slug: str
    changes: Dict[str, Any]
    reason: str = ""

    @field_validator('slug')
    @classmethod
    def slug_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('slug cannot be empty')
        return v.strip()


class BatchUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    changesets: List[ChangesetModel]
    dry_run: bool = Field(default=False, alias="dryRun")


class RollbackRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    backup_id: str = Field(alias="backupId")
    dry_run: bool = Field(default=False, alias="dryRun")

    @field_validator('backup_id')
    @classmethod
    def backup_id_must_not_be_empty(cls, v):
        if not v.strip():
            raise ValueError('backupId cannot be empty')
        return v.strip()


class FoundryUpdateRequest(BaseModel):
    id: str
    updates: Dict[str, Any]

    @field_validator('updates')
    @classmethod
    def updates_must_be_mutable(cls, v):
        if not v:
            raise ValueError('updates cannot be empty')
        blocked = [k for k in v if k in IMMUTABLE_FIELDS]
        if blocked:
            raise ValueError(f'cannot update immutable fields: {blocked}')
        return v


class ValidationJobRequest(BaseModel):
    slugs: Optional[List[str]] = None
    limit: Optional[int] = None
    all: bool = False
    resume: bool = False
    website_only: bool = False

    @field_validator('limit')
    @classmethod
    def limit_must_be_positive(cls, v):
        if v is not None and v < 1:
            raise ValueError('limit must be >= 1')
        return v


class HealthResponse(BaseModel):
    status: str
    version: str
    db_health: bool
    foundry_count: int


class BackupSummary(BaseModel):
    id: str
    created_at: str
    reason: str
    record_count: int
    status: str


class BackupListResponse(BaseModel):
    backups: List[BackupSummary]


class ValidationJobResponse(BaseModel):
    job_id: str
    status: str
    total: int = 0
    processed: int = 0
    validated: int = 0
    errors: int = 0
    current_slug: Optional[str] = None
    report_path: Optional[str] = None
    error: Optional[str] = None
    recent: List[Dict[str, Any]] = []
