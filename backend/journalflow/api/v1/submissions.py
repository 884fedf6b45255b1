from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, UploadFile

from journalflow.core.actor import SUBMITTING_ROLES, Actor
from journalflow.core.errors import Forbidden, ValidationError
from journalflow.core.roles import get_current_actor
from journalflow.schemas.submission import StatusUpdate
from journalflow.services.storage_service import PDF_CONTENT_TYPE, validate_pdf
from journalflow.services.validation import submission_errors
from journalflow.services.workflow import Workflow, get_workflow

router = APIRouter(tags=["Submissions"])


def _split_keywords(raw: list[str]) -> list[str]:
    """
    multipart 表单既支持重复字段（keywords=a&keywords=b），也支持单个逗号分隔字段。
    """
    if len(raw) == 1 and "," in raw[0]:
        return [part.strip() for part in raw[0].split(",")]
    return raw


async def _store_upload(file: UploadFile, workflow: Workflow) -> str:
    content = await file.read()
    validate_pdf(
        content,
        filename=file.filename,
        content_type=file.content_type,
        max_bytes=workflow.config.manuscript_max_bytes,
    )
    return workflow.store.store(content, filename=file.filename, content_type=PDF_CONTENT_TYPE)


@router.post("/submissions", status_code=201)
async def create_submission(
    title: str = Form(...),
    abstract: str = Form(...),
    keywords: list[str] = Form(...),
    co_authors: list[str] = Form([]),
    file: UploadFile = File(...),
    actor: Actor = Depends(get_current_actor),
    workflow: Workflow = Depends(get_workflow),
):
    """
    作者投稿

    中文注释:
    1. 先做角色与字段校验，再上传 PDF，避免无效请求在文件存储里留下孤儿文件。
    2. 文件上传成功后，把存储返回的 reference 交给 SubmissionService 创建记录。
    """
    if not actor.has_any_role(SUBMITTING_ROLES):
        raise Forbidden("Only authors can submit manuscripts")
    keyword_list = _split_keywords(keywords)
    errors = submission_errors(
        title=title,
        abstract=abstract,
        keywords=keyword_list,
        co_authors=co_authors,
        manuscript_reference=file.filename or "upload",
    )
    if errors:
        raise ValidationError(errors)

    reference = await _store_upload(file, workflow)
    submission = workflow.submissions.create_submission(
        actor,
        title=title,
        abstract=abstract,
        keywords=keyword_list,
        co_authors=co_authors,
        manuscript_reference=reference,
    )
    return {"success": True, "data": submission.model_dump(mode="json")}


@router.get("/submissions/stats")
async def get_submission_statistics(
    actor: Actor = Depends(get_current_actor),
    workflow: Workflow = Depends(get_workflow),
):
    stats = workflow.submissions.get_statistics(actor)
    return {"success": True, "data": stats.model_dump(mode="json")}


@router.get("/submissions/{submission_id}")
async def get_submission(
    submission_id: str,
    actor: Actor = Depends(get_current_actor),
    workflow: Workflow = Depends(get_workflow),
):
    submission = workflow.submissions.get_submission(submission_id, actor)
    return {"success": True, "data": submission.model_dump(mode="json")}


@router.patch("/submissions/{submission_id}/status")
async def update_submission_status(
    submission_id: str,
    payload: StatusUpdate,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    workflow: Workflow = Depends(get_workflow),
):
    with workflow.notifier.deferred(background_tasks.add_task):
        submission = workflow.submissions.update_status(
            submission_id,
            payload.status,
            actor,
            comments=payload.comments,
        )
    return {"success": True, "data": submission.model_dump(mode="json")}


@router.put("/submissions/{submission_id}/manuscript")
async def replace_manuscript(
    submission_id: str,
    file: UploadFile = File(...),
    actor: Actor = Depends(get_current_actor),
    workflow: Workflow = Depends(get_workflow),
):
    """
    作者在 revisions_required 阶段重传稿件；状态保持不变，等待编辑处理。
    """
    workflow.submissions.check_replace_allowed(submission_id, actor)
    reference = await _store_upload(file, workflow)
    submission = workflow.submissions.replace_manuscript(submission_id, actor, reference)
    return {"success": True, "data": submission.model_dump(mode="json")}


@router.delete("/submissions/{submission_id}")
async def delete_submission(
    submission_id: str,
    cascade: bool = False,
    actor: Actor = Depends(get_current_actor),
    workflow: Workflow = Depends(get_workflow),
):
    workflow.submissions.delete_submission(submission_id, actor, cascade=cascade)
    return {"success": True}
