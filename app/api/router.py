from fastapi import APIRouter
from app.api import applications, jobs, users

router = APIRouter()
router.include_router(jobs.router, prefix="/jobs", tags=["Jobs"])
router.include_router(applications.router, prefix="/applications", tags=["Applications"])
router.include_router(users.router, prefix="/users", tags=["Users"])
