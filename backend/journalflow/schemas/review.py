from pydantic import BaseModel, Field


class AssignReviewerPayload(BaseModel):
    submission_id: str = Field(..., min_length=1)
    reviewer_id: str = Field(..., min_length=1)


class ReviewSubmission(BaseModel):
    submission_id: str = Field(..., min_length=1)
    comments: str = Field(default="", max_length=20000)
    # 中文注释: recommendation 在 Service 层校验，错误以统一的领域错误格式返回
    recommendation: str
