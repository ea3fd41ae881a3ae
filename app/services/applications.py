import logging
import uuid

from fastapi import HTTPException
from sqlalchemy.orm import Session, selectinload

from app.models.application import Application
from app.schemas.applications import ApplicationWorkflowUpdate
from app.services.query_executor import serialize_row

_LOG = logging.getLogger("app.applications")

DETAIL_INCLUDE = {
    "job": True,
    "user": {"select": {"id": True, "email": True, "first_name": True, "last_name": True}},
}


def _application_or_404(db: Session, application_id: str) -> Application:
    try:
        key = uuid.UUID(str(application_id))
    except ValueError:
        raise HTTPException(status_code=404, detail="Application not found")
    application = db.get(Application, key, options=[selectinload(Application.job), selectinload(Application.user)])
    if application is None:
        raise HTTPException(status_code=404, detail="Application not found")
    return application


def _owns_job(application: Application, caller: dict) -> bool:
    return str(application.job.created_by_id) == str(caller.get("sub"))


def get_application(db: Session, application_id: str, caller: dict) -> dict:
    application = _application_or_404(db, application_id)
    role = caller.get("role")
    if role == "CANDIDATE" and str(application.user_id) != str(caller.get("sub")):
        raise HTTPException(status_code=404, detail="Application not found")
    if role == "RECRUITER" and not _owns_job(application, caller):
        raise HTTPException(status_code=403, detail="You can only view applications for your jobs")
    return serialize_row(application, include=DETAIL_INCLUDE)


def update_workflow(db: Session, application_id: str, payload: ApplicationWorkflowUpdate, caller: dict) -> dict:
    application = _application_or_404(db, application_id)
    if caller.get("role") != "ADMIN" and not _owns_job(application, caller):
        _LOG.warning("workflow change denied application_id=%s sub=%s", application.id, caller.get("sub"))
        raise HTTPException(status_code=403, detail="You can only update applications for your jobs")
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(application, key, value)
    db.commit()
    db.refresh(application)
    return serialize_row(application, include=DETAIL_INCLUDE)
