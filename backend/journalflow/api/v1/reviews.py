from fastapi import APIRouter, BackgroundTasks, Depends

from journalflow.core.actor import Actor
from journalflow.core.roles import get_current_actor
from journalflow.schemas.review import AssignReviewerPayload, ReviewSubmission
from journalflow.services.workflow import Workflow, get_workflow

router = APIRouter(tags=["Reviews"])


@router.post("/reviews/assign")
async def assign_reviewer(
    payload: AssignReviewerPayload,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    workflow: Workflow = Depends(get_workflow),
):
    """
    编辑分配审稿人

    中文注释:
    1. 同一审稿人重复指派返回 409 already_assigned（并发请求也只会有一个成功）。
    2. 稿件仍处于 submitted 时，首次指派会把它推进到 under_review。
    3. 通知通过 BackgroundTasks 在响应发出后投递。
    """
    with workflow.notifier.deferred(background_tasks.add_task):
        review = workflow.reviews.assign_reviewer(payload.submission_id, payload.reviewer_id, actor)
    return {"success": True, "data": review.model_dump(mode="json")}


@router.post("/reviews/submit")
async def submit_review(
    payload: ReviewSubmission,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    workflow: Workflow = Depends(get_workflow),
):
    with workflow.notifier.deferred(background_tasks.add_task):
        review = workflow.reviews.submit_review(
            payload.submission_id,
            actor.id,
            payload.comments,
            payload.recommendation,
            actor,
        )
    return {"success": True, "data": review.model_dump(mode="json")}


@router.get("/reviews/stats")
async def get_review_statistics(
    actor: Actor = Depends(get_current_actor),
    workflow: Workflow = Depends(get_workflow),
):
    """
    全局审稿统计：推荐意见分布与平均审稿天数（编辑 / 管理员）
    """
    stats = workflow.reviews.get_review_statistics(actor)
    return {"success": True, "data": stats.model_dump(mode="json")}


@router.get("/reviews/summary/{submission_id}")
async def get_review_summary(
    submission_id: str,
    actor: Actor = Depends(get_current_actor),
    workflow: Workflow = Depends(get_workflow),
):
    summary = workflow.reviews.get_review_summary(submission_id, actor)
    return {"success": True, "data": summary.model_dump(mode="json")}


@router.get("/reviews/submission/{submission_id}")
async def list_submission_reviews(
    submission_id: str,
    actor: Actor = Depends(get_current_actor),
    workflow: Workflow = Depends(get_workflow),
):
    reviews = workflow.reviews.list_reviews(submission_id, actor)
    return {"success": True, "data": [r.model_dump(mode="json") for r in reviews]}


@router.get("/reviews/my-tasks")
async def get_my_review_tasks(
    actor: Actor = Depends(get_current_actor),
    workflow: Workflow = Depends(get_workflow),
):
    """
    审稿人工作台：待完成与已完成的审稿任务
    """
    queue = workflow.reviews.get_reviewer_queue(actor)
    return {"success": True, "data": queue.model_dump(mode="json")}
