"""
Admin HTTP API for the foundry directory: record lookup, batch fixes, rollback, validation jobs.
"""

import uuid
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI, HTTPException, Depends, Header, BackgroundTasks, Query
from fastapi.middleware.cors import CORSMiddleware

from .schemas import (
    BatchUpdateRequest,
    RollbackRequest,
    FoundryUpdateRequest,
    ValidationJobRequest,
    HealthResponse,
    BackupSummary,
    BackupListResponse,
    ValidationJobResponse,
)
from ..core import dao
from ..core.auth import AdminCredential
from ..core.batch_update import apply_changesets
from ..core.config import VERSION, BACKUP_LIST_LIMIT, debug_enabled
from ..core.db import init_db, health_check
from ..core.errors import (
    AlreadyRolledBackError,
    BackupExpiredError,
    FoundryDataError,
    InvalidChangesetError,
    InvalidFieldError,
    NotFoundError,
)
from ..core.progress import JOB_FAILED, JOB_RUNNING, InMemoryJobProgressStore, JobProgress, JobProgressStore
from ..core.rollback import get_backup_details, list_backups, rollback_backup
from ..core.schema import Changeset
from ..validation.fetcher import ContentFetcher
from ..validation.runner import DEFAULT_LIMIT, RecordSelector, ValidationRunner
from util.logging import logger, audit_event


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="Foundry Directory Admin API",
    version=VERSION,
    description="Validation, batch fixes and rollback for foundry records",
    docs_url="/docs" if debug_enabled() else None,
    redoc_url="/redoc" if debug_enabled() else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Validation jobs started through this process
progress_store: JobProgressStore = InMemoryJobProgressStore()
active_runners: Dict[str, ValidationRunner] = {}


def build_runner(website_only: bool = False) -> ValidationRunner:
    """Runner for API-started jobs. State files are a CLI concern."""
    return ValidationRunner(
        fetcher=ContentFetcher(),
        progress_store=progress_store,
        state_file=None,
        use_wikidata=not website_only,
        use_fonts_in_use=not website_only,
        use_myfonts=not website_only,
    )


def require_admin(x_admin_password: Optional[str] = Header(default=None)) -> AdminCredential:
    credential = AdminCredential.from_env()
    if not credential.verify(x_admin_password):
        raise HTTPException(status_code=401, detail="Unauthorized")
    return credential


def _http_error(e: FoundryDataError) -> HTTPException:
    """Map pipeline errors to status codes."""
    if isinstance(e, NotFoundError):
        detail = {"message": str(e), "missing": e.missing} if e.missing else str(e)
        return HTTPException(status_code=404, detail=detail)
    if isinstance(e, AlreadyRolledBackError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, BackupExpiredError):
        return HTTPException(status_code=410, detail=str(e))
    if isinstance(e, (InvalidChangesetError, InvalidFieldError)):
        return HTTPException(status_code=400, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


@app.get("/health", response_model=HealthResponse)
def health_check_endpoint():
    """Check system health."""
    db_health = health_check()
    foundry_count = dao.get_foundry_count() if db_health else 0

    return HealthResponse(
        status="healthy" if db_health else "unhealthy",
        version=VERSION,
        db_health=db_health,
        foundry_count=foundry_count
    )


@app.get("/foundries")
def list_foundries_endpoint(q: Optional[str] = None, limit: int = Query(default=100, ge=1, le=1000)):
    records = dao.search_foundries(q, limit=limit) if q else dao.list_foundries(limit=limit)
    return {"foundries": [r.to_dict() for r in records], "count": len(records)}


@app.get("/foundries/{slug}")
def get_foundry_endpoint(slug: str):
    record = dao.get_foundry(slug)
    if not record:
        raise HTTPException(status_code=404, detail=f"Foundry not found: {slug}")
    return record.to_dict()


@app.post("/admin/foundries")
def update_foundry_endpoint(request: FoundryUpdateRequest, _: AdminCredential = Depends(require_admin)):
    """Update one record by id."""
    try:
        dao.update_foundry_by_id(request.id, request.updates)
    except FoundryDataError as e:
        raise _http_error(e)

    audit_event("foundry.updated", {"id": request.id}, {"fields": list(request.updates.keys())})
    return dao.get_foundry_by_id(request.id).to_dict()


# Batch routes are registered before any /admin/foundries/{...} pattern
@app.post("/admin/foundries/batch")
def batch_update_endpoint(request: BatchUpdateRequest, _: AdminCredential = Depends(require_admin)):
    changesets = [Changeset(slug=c.slug, changes=c.changes, reason=c.reason) for c in request.changesets]
    try:
        result = apply_changesets(changesets, dry_run=request.dry_run)
    except FoundryDataError as e:
        raise _http_error(e)
    return result.to_dict()


@app.get("/admin/foundries/batch", response_model=BackupListResponse)
def list_backups_endpoint(limit: int = Query(default=BACKUP_LIST_LIMIT, ge=1, le=200),
                          _: AdminCredential = Depends(require_admin)):
    return BackupListResponse(backups=[BackupSummary(**b.summary()) for b in list_backups(limit)])


@app.get("/admin/foundries/rollback/{backup_id}")
def backup_details_endpoint(backup_id: str, _: AdminCredential = Depends(require_admin)):
    try:
        backup = get_backup_details(backup_id)
    except FoundryDataError as e:
        raise _http_error(e)
    return backup.to_dict()


@app.post("/admin/foundries/rollback")
def rollback_endpoint(request: RollbackRequest, _: AdminCredential = Depends(require_admin)):
    try:
        result = rollback_backup(request.backup_id, dry_run=request.dry_run)
    except FoundryDataError as e:
        raise _http_error(e)
    return result.to_dict()


def _run_validation_job(runner: ValidationRunner, selector: RecordSelector, job_id: str, resume: bool) -> None:
    try:
        runner.run(selector, job_id=job_id, resume=resume)
    except Exception as e:
        logger.error(f"Validation job {job_id} failed: {e}")
        progress = progress_store.get(job_id) or JobProgress(job_id=job_id)
        progress.status = JOB_FAILED
        progress.error = str(e)
        progress_store.set(job_id, progress)
    finally:
        active_runners.pop(job_id, None)
        runner.close()


@app.post("/admin/validation/jobs", response_model=ValidationJobResponse, status_code=202)
def start_validation_job(request: ValidationJobRequest, background_tasks: BackgroundTasks,
                         _: AdminCredential = Depends(require_admin)):
    try:
        if request.slugs:
            selector = RecordSelector.slugs(request.slugs)
            selector.resolve()
        elif request.all:
            selector = RecordSelector.all()
        else:
            selector = RecordSelector.first(request.limit or DEFAULT_LIMIT)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except FoundryDataError as e:
        raise _http_error(e)

    job_id = str(uuid.uuid4())
    runner = build_runner(website_only=request.website_only)
    active_runners[job_id] = runner

    progress = JobProgress(job_id=job_id, status=JOB_RUNNING)
    progress_store.set(job_id, progress)
    background_tasks.add_task(_run_validation_job, runner, selector, job_id, request.resume)

    logger.log_validation_run("queued", {"job_id": job_id, "selection": selector.describe()})
    return ValidationJobResponse(**progress.to_dict())


@app.get("/admin/validation/jobs/{job_id}", response_model=ValidationJobResponse)
def get_validation_job(job_id: str, _: AdminCredential = Depends(require_admin)):
    progress = progress_store.get(job_id)
    if progress is None:
        raise HTTPException(status_code=404, detail="Job not found or expired")
    return ValidationJobResponse(**progress.to_dict())


@app.delete("/admin/validation/jobs/{job_id}")
def cancel_validation_job(job_id: str, _: AdminCredential = Depends(require_admin)):
    """Cancel a running job. It stops before its next record."""
    runner = active_runners.get(job_id)
    if runner is None:
        progress = progress_store.get(job_id)
        if progress is None:
            raise HTTPException(status_code=404, detail="Job not found or expired")
        return {"job_id": job_id, "status": progress.status, "cancelled": False}

    runner.cancel()
    audit_event("validation.cancel_requested", {"job_id": job_id})
    return {"job_id": job_id, "status": "cancelling", "cancelled": True}
