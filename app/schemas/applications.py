from typing import Literal, Optional

from pydantic import BaseModel, Field

WorkflowStatus = Literal["NEW", "SCREENING", "INTERVIEW", "OFFER", "DONE"]
FinalDecision = Literal["HIRED", "REJECTED"]


class ApplicationWorkflowUpdate(BaseModel):
    workflow_status: WorkflowStatus
    final_decision: Optional[FinalDecision] = None
    notes: Optional[str] = None
    score: Optional[int] = Field(default=None, ge=1, le=5)
