import uuid

from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.db.session import Base
from app.models.common import UUIDMixin, TimestampMixin

WORKFLOW_STATUSES = ("NEW", "SCREENING", "INTERVIEW", "OFFER", "DONE")
FINAL_DECISIONS = ("HIRED", "REJECTED")

class Application(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "applications"
    __table_args__ = (UniqueConstraint("job_id", "user_id", name="uq_applications_job_user"),)

    job_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("jobs.id"), nullable=False, index=True)
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    cv_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    cover_letter: Mapped[str | None] = mapped_column(Text, nullable=True)
    workflow_status: Mapped[str] = mapped_column(String(20), nullable=False, default="NEW", index=True)
    final_decision: Mapped[str | None] = mapped_column(String(20), nullable=True)  # HIRED|REJECTED
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    score: Mapped[int | None] = mapped_column(Integer, nullable=True)

    job = relationship("Job", back_populates="applications")
    user = relationship("User", back_populates="applications")
