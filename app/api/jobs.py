from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.deps import get_current_user, require_role
from app.db.session import get_db
from app.schemas.jobs import JobCreate, JobUpdate
from app.schemas.query import PaginatedResponse, QueryDescriptor
from app.services import jobs as job_service
from app.services.listing import list_entities

router = APIRouter()


@router.post("/list", response_model=PaginatedResponse)
def list_jobs(
    descriptor: QueryDescriptor,
    db: Session = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    return list_entities(db, "jobs", descriptor, user)


@router.get("/{job_id}")
def get_job(job_id: str, db: Session = Depends(get_db), user: dict = Depends(get_current_user)):
    return job_service.get_job(db, job_id, user)


@router.post("", status_code=201)
def create_job(
    payload: JobCreate,
    db: Session = Depends(get_db),
    user: dict = Depends(require_role("ADMIN", "RECRUITER")),
):
    return job_service.create_job(db, payload, user)


@router.patch("/{job_id}")
def update_job(
    job_id: str,
    payload: JobUpdate,
    db: Session = Depends(get_db),
    user: dict = Depends(require_role("ADMIN", "RECRUITER")),
):
    return job_service.update_job(db, job_id, payload, user)


@router.post("/{job_id}/archive")
def archive_job(
    job_id: str,
    db: Session = Depends(get_db),
    user: dict = Depends(require_role("ADMIN", "RECRUITER")),
):
    return job_service.archive_job(db, job_id, user)
