import logging
import uuid

from fastapi import HTTPException
from sqlalchemy.orm import Session

from app.models.job import Job
from app.schemas.jobs import JobCreate, JobUpdate
from app.services.query_executor import serialize_row

_LOG = logging.getLogger("app.jobs")


def _uuid_or_404(raw: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        raise HTTPException(status_code=404, detail="Job not found")


def _actor_uuid_or_401(caller: dict) -> uuid.UUID:
    try:
        return uuid.UUID(str(caller.get("sub") or ""))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token")


def _job_or_404(db: Session, job_id: str) -> Job:
    job = db.get(Job, _uuid_or_404(job_id))
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job


def _is_owner(job: Job, caller: dict) -> bool:
    return str(job.created_by_id) == str(caller.get("sub"))


def can_view_job(job: Job, caller: dict) -> bool:
    role = caller.get("role")
    if role == "ADMIN" or job.status == "PUBLISHED":
        return True
    return role == "RECRUITER" and _is_owner(job, caller)


def _owned_job_or_403(db: Session, job_id: str, caller: dict) -> Job:
    job = _job_or_404(db, job_id)
    if caller.get("role") != "ADMIN" and not _is_owner(job, caller):
        _LOG.warning("job change denied job_id=%s sub=%s", job.id, caller.get("sub"))
        raise HTTPException(status_code=403, detail="You can only change jobs you created")
    return job


def get_job(db: Session, job_id: str, caller: dict) -> dict:
    job = _job_or_404(db, job_id)
    if not can_view_job(job, caller):
        raise HTTPException(status_code=404, detail="Job not found")
    return serialize_row(job)


def create_job(db: Session, payload: JobCreate, caller: dict) -> dict:
    job = Job(**payload.model_dump(), status="DRAFT", created_by_id=_actor_uuid_or_401(caller))
    db.add(job)
    db.commit()
    db.refresh(job)
    _LOG.info("job created job_id=%s sub=%s", job.id, caller.get("sub"))
    return serialize_row(job)


def update_job(db: Session, job_id: str, payload: JobUpdate, caller: dict) -> dict:
    job = _owned_job_or_403(db, job_id, caller)
    changes = payload.model_dump(exclude_unset=True)
    salary_min = changes.get("salary_min", job.salary_min)
    salary_max = changes.get("salary_max", job.salary_max)
    if salary_min is not None and salary_max is not None and salary_min > salary_max:
        raise HTTPException(status_code=400, detail="salary_min must not exceed salary_max")
    for key, value in changes.items():
        setattr(job, key, value)
    db.commit()
    db.refresh(job)
    return serialize_row(job)


def archive_job(db: Session, job_id: str, caller: dict) -> dict:
    job = _owned_job_or_403(db, job_id, caller)
    job.status = "ARCHIVED"
    db.commit()
    db.refresh(job)
    _LOG.info("job archived job_id=%s sub=%s", job.id, caller.get("sub"))
    return serialize_row(job)
