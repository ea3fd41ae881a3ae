from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.deps import get_current_user
from app.db.session import get_db
from app.schemas.query import PaginatedResponse, QueryDescriptor
from app.services.listing import list_entities

router = APIRouter()


@router.post("/list", response_model=PaginatedResponse)
def list_users(
    descriptor: QueryDescriptor,
    db: Session = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    return list_entities(db, "users", descriptor, user)
