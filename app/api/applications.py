from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.deps import get_current_user, require_role
from app.db.session import get_db
from app.schemas.applications import ApplicationWorkflowUpdate
from app.schemas.query import PaginatedResponse, QueryDescriptor
from app.services import applications as application_service
from app.services.listing import list_entities

router = APIRouter()


@router.post("/list", response_model=PaginatedResponse)
def list_applications(
    descriptor: QueryDescriptor,
    db: Session = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    return list_entities(db, "applications", descriptor, user)


@router.get("/{application_id}")
def get_application(application_id: str, db: Session = Depends(get_db), user: dict = Depends(get_current_user)):
    return application_service.get_application(db, application_id, user)


@router.patch("/{application_id}/workflow")
def update_workflow(
    application_id: str,
    payload: ApplicationWorkflowUpdate,
    db: Session = Depends(get_db),
    user: dict = Depends(require_role("ADMIN", "RECRUITER")),
):
    return application_service.update_workflow(db, application_id, payload, user)
