from typing import Optional

from pydantic import BaseModel, Field


class StatusUpdate(BaseModel):
    status: str = Field(..., description="submitted / under_review / revisions_required / accepted / rejected")
    comments: Optional[str] = Field(None, max_length=5000, description="编辑意见（作者可见）")
