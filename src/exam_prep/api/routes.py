"""REST API routes for access, content, progress and preferences."""

import structlog
from fastapi import APIRouter, Header, HTTPException
from pydantic import BaseModel, Field

from exam_prep.access.admin import AdminPolicy
from exam_prep.access.entitlement import can_access_topic, evaluate
from exam_prep.access.gate import resolve_view
from exam_prep.auth.identity import Identity
from exam_prep.config import get_settings
from exam_prep.errors import AuthError, NotFoundError
from exam_prep.models.access import DENIED, AccessDecision
from exam_prep.models.user import User, utc_now
from exam_prep.progress.anchors import TickAnchors
from exam_prep.progress.tracker import ProgressTracker
from exam_prep.storage.content import get_content_store
from exam_prep.storage.documents import USERS, DocumentStore, get_document_store
from exam_prep.users.preferences import set_daily_goal
from exam_prep.users.provisioning import ensure_user_record

logger = structlog.get_logger()
router = APIRouter(prefix="/api")

# Trackers are built per request; only the tick anchors outlive it
_anchors = TickAnchors()


class StartTopicRequest(BaseModel):
    program_id: str = ""
    level: str = ""
    role_id: str = ""
    title: str | None = None


class AnswerRequest(BaseModel):
    topic_id: str
    was_correct: bool
    elapsed_seconds: float = Field(default=0.0, ge=0)


class DailyGoalRequest(BaseModel):
    minutes: int


def get_tracker(store: DocumentStore, uid: str) -> ProgressTracker:
    return ProgressTracker(store, uid, anchors=_anchors)


def _not_found(e: NotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail=e.to_dict())


def access_for(store: DocumentStore, uid: str | None) -> AccessDecision:
    """Current decision for a user; unknown users get the preview-only decision."""
    if not uid:
        return DENIED
    data = store.get_document(USERS, uid)
    if data is None:
        return DENIED
    return evaluate(User.model_validate(data).subscription, utc_now())


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


@router.post("/users/provision")
async def provision_user(identity: Identity) -> dict:
    settings = get_settings()
    result = ensure_user_record(
        get_document_store(),
        identity,
        trial_days=settings.trial_days,
        daily_goal_minutes=settings.default_daily_goal_minutes,
    )
    return result.model_dump(mode="json")


@router.get("/users/{uid}/access")
async def get_access(uid: str) -> dict:
    return access_for(get_document_store(), uid).model_dump(mode="json")


@router.get("/topics/{program_area}/{topic_id}")
async def get_topic(program_area: str, topic_id: str, uid: str | None = None) -> dict:
    """Topic metadata plus the gated view of its body for ``uid``."""
    settings = get_settings()
    try:
        content = get_content_store().load_topic(program_area, topic_id)
    except NotFoundError as e:
        raise _not_found(e)
    decision = access_for(get_document_store(), uid)
    view = resolve_view(
        content.topic.is_preview,
        decision,
        content.body,
        preview_chars=settings.preview_chars,
    )
    return {
        "topic": content.topic.model_dump(mode="json"),
        "can_access": can_access_topic(content.topic, decision),
        "access": decision.model_dump(mode="json"),
        "view": view.model_dump(mode="json"),
    }


def _progress_response(tracker: ProgressTracker, payload: dict) -> dict:
    warnings, tracker.warnings = tracker.warnings, []
    return {**payload, "warnings": warnings}


@router.post("/users/{uid}/progress/{topic_id}/start")
async def start_topic(uid: str, topic_id: str, request: StartTopicRequest) -> dict:
    tracker = get_tracker(get_document_store(), uid)
    record = tracker.start_topic(
        topic_id,
        program_id=request.program_id,
        level=request.level,
        role_id=request.role_id,
        title=request.title,
    )
    return _progress_response(tracker, {"progress": record.model_dump(mode="json")})


@router.post("/users/{uid}/progress/{topic_id}/complete")
async def complete_topic(uid: str, topic_id: str) -> dict:
    tracker = get_tracker(get_document_store(), uid)
    try:
        record = tracker.mark_complete(topic_id)
    except NotFoundError as e:
        raise _not_found(e)
    return _progress_response(tracker, {"progress": record.model_dump(mode="json")})


@router.post("/users/{uid}/progress/{topic_id}/reopen")
async def reopen_topic(uid: str, topic_id: str) -> dict:
    tracker = get_tracker(get_document_store(), uid)
    try:
        record = tracker.reopen_topic(topic_id)
    except NotFoundError as e:
        raise _not_found(e)
    return _progress_response(tracker, {"progress": record.model_dump(mode="json")})


@router.post("/users/{uid}/answers")
async def record_answer(uid: str, request: AnswerRequest) -> dict:
    tracker = get_tracker(get_document_store(), uid)
    try:
        stats = tracker.record_answer(request.topic_id, request.was_correct, request.elapsed_seconds)
    except NotFoundError as e:
        raise _not_found(e)
    return _progress_response(tracker, {"stats": stats.model_dump(mode="json")})


@router.get("/users/{uid}/progress/summary")
async def progress_summary(uid: str) -> dict:
    tracker = get_tracker(get_document_store(), uid)
    try:
        return tracker.summary().model_dump(mode="json")
    except NotFoundError as e:
        raise _not_found(e)


@router.put("/users/{uid}/preferences/daily-goal")
async def update_daily_goal(uid: str, request: DailyGoalRequest) -> dict:
    try:
        update = set_daily_goal(get_document_store(), uid, request.minutes)
    except NotFoundError as e:
        raise _not_found(e)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {
        "preferences": update.preferences.model_dump(mode="json"),
        "warnings": [update.warning] if update.warning else [],
    }


@router.get("/admin/users")
async def list_users(x_admin_email: str | None = Header(default=None)) -> list[dict]:
    """List user records (admin console)."""
    policy = AdminPolicy(get_settings().admin_emails)
    identity = Identity(uid=x_admin_email, email=x_admin_email) if x_admin_email else None
    try:
        policy.require_admin(identity)
    except AuthError as e:
        status = 401 if e.kind == "unauthenticated" else 403
        raise HTTPException(status_code=status, detail=e.to_dict())

    users = []
    for snap in get_document_store().list_documents(USERS):
        try:
            user = User.model_validate(snap.data)
        except ValueError:
            logger.warning("user_parse_error", doc_id=snap.doc_id)
            continue
        users.append({
            "uid": user.uid,
            "email": user.email,
            "display_name": user.display_name,
            "subscription": user.subscription.model_dump(mode="json"),
            "stats": user.stats.model_dump(mode="json"),
        })
    return users
