import logging
from functools import lru_cache

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.middleware.gzip import GZipMiddleware
from starlette.middleware.httpsredirect import HTTPSRedirectMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

from powerlunch.config import check_group_sizes, load_settings
from powerlunch.database import Base, SessionLocal, engine, get_db
from powerlunch.logging_config import setup_logging
from powerlunch.schemas import (
    MatchingConstraints,
    MatchLunchesRequest,
    NetworkingToolInput,
    RegistrationCreate,
    ReminderRequest,
)
from powerlunch.services.audit import write_audit_log
from powerlunch.services.errors import PowerLunchError
from powerlunch.services.networking import suggest_connections
from powerlunch.services.notifications import FcmPushSender, NotificationFanout, PushSender
from powerlunch.services.oracle import ClaudeMatchingStrategy, MatchingStrategy
from powerlunch.services.orchestrator import MatchingOrchestrator
from powerlunch.services.registrations import RegistrationStore
from powerlunch.services.security import (
    ADMIN_KEY_HEADER,
    InMemoryRateLimiter,
    enforce_production_security,
    verify_admin_key,
)

settings = load_settings()
setup_logging(settings.log_level)
logger = logging.getLogger("powerlunch.api")

enforce_production_security(settings)
check_group_sizes(settings)

app = FastAPI(title="Power Lunch Matching Service", version="1.0.0")
Base.metadata.create_all(bind=engine)
app.add_middleware(GZipMiddleware, minimum_size=1024)

if list(settings.allowed_hosts) != ["*"]:
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=list(settings.allowed_hosts))
if settings.force_https:
    app.add_middleware(HTTPSRedirectMiddleware)

ADMIN_ACTOR = "admin-api"
rate_limiter = InMemoryRateLimiter()


def get_store() -> RegistrationStore:
    return RegistrationStore(SessionLocal)


@lru_cache(maxsize=1)
def get_matching_strategy() -> MatchingStrategy:
    return ClaudeMatchingStrategy(
        model=settings.anthropic_model,
        max_tokens=settings.oracle_max_tokens,
        api_key=settings.anthropic_api_key,
        timeout=settings.oracle_timeout_seconds,
    )


@lru_cache(maxsize=1)
def get_push_sender() -> PushSender:
    return FcmPushSender(
        project_id=settings.fcm_project_id,
        access_token=settings.fcm_access_token,
        credentials_file=settings.fcm_service_account_file,
        base_url=settings.fcm_base_url,
        timeout=settings.push_timeout_seconds,
    )


def get_constraints() -> MatchingConstraints:
    return MatchingConstraints(
        min_group_size=settings.min_group_size,
        max_group_size=settings.max_group_size,
    )


def check_rate_limit(request: Request, bucket: str, limit: int, period_seconds: int):
    client_ip = request.client.host if request.client else "unknown"
    if not rate_limiter.allow(f"{bucket}:{client_ip}", limit, period_seconds):
        raise HTTPException(status_code=429, detail="Rate limit exceeded")


@app.middleware("http")
async def admin_key_guard(request: Request, call_next):
    # Runs before routing and body parsing, so unauthenticated calls never reach validation.
    if request.url.path.startswith("/v1/admin"):
        if not verify_admin_key(request.headers.get(ADMIN_KEY_HEADER), settings.admin_api_key):
            if not settings.admin_api_key:
                logger.error("ADMIN_API_KEY not configured; rejecting %s", request.url.path)
            else:
                logger.warning("Rejected admin request to %s: missing or invalid API key", request.url.path)
            return JSONResponse(status_code=401, content={"detail": "Unauthorized"})
    return await call_next(request)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "no-referrer"
    response.headers["Cache-Control"] = "no-store"
    if settings.force_https:
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        field = str(err.get("loc", ["body"])[-1])
        message = str(err.get("msg", "invalid value")).removeprefix("Value error, ")
        problems.append(f"{field}: {message}")
    return JSONResponse(status_code=400, content={"detail": "; ".join(problems) or "Invalid request body"})


@app.exception_handler(PowerLunchError)
async def pipeline_error_handler(request: Request, exc: PowerLunchError):
    logger.error("Request to %s failed: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": f"Internal server error: {exc}"})


# Admin API: shared-secret header enforced by admin_key_guard.
@app.post("/v1/admin/match-lunches")
def match_lunches(
    payload: MatchLunchesRequest,
    db: Session = Depends(get_db),
    store: RegistrationStore = Depends(get_store),
    strategy: MatchingStrategy = Depends(get_matching_strategy),
    sender: PushSender = Depends(get_push_sender),
    constraints: MatchingConstraints = Depends(get_constraints),
):
    conference_id, lunch_date = payload.conference_id, payload.lunch_date
    logger.info("Starting Power Lunch matching for %s on %s", conference_id, lunch_date)

    result = MatchingOrchestrator(store, strategy, constraints=constraints).run(conference_id, lunch_date)
    if not result.success:
        write_audit_log(
            db, ADMIN_ACTOR, "match_lunches", "conference", conference_id, "failed",
            {"lunchDate": lunch_date, "error": (result.error or "")[:240]},
        )
        raise HTTPException(status_code=500, detail=f"Matching failed: {result.error}")

    notifications = None
    if payload.send_notifications and result.groups:
        logger.info("Sending notifications for %d groups", len(result.groups))
        notifications = NotificationFanout(store, sender).notify(conference_id, result.groups)

    write_audit_log(
        db, ADMIN_ACTOR, "match_lunches", "conference", conference_id, "success",
        {
            "lunchDate": lunch_date,
            "stats": result.stats.to_dict(),
            "notifications": notifications.to_dict() if notifications else None,
        },
    )

    response = {
        "success": True,
        "conferenceId": conference_id,
        "lunchDate": lunch_date,
        "groups": [
            {
                "id": g.id,
                "memberCount": g.member_count,
                "timeSlot": g.time_slot,
                "commonTopics": list(g.common_topics or []),
                "matchRationale": g.match_rationale,
            }
            for g in result.groups
        ],
        "stats": result.stats.to_dict(),
        "unmatchedRegistrationIds": result.unmatched_registration_ids,
    }
    if result.notes:
        response["matchingNotes"] = result.notes
    if notifications is not None:
        response["notifications"] = notifications.to_dict()
    return response


@app.get("/v1/admin/match-lunches")
def match_lunches_docs():
    return {
        "endpoint": "/v1/admin/match-lunches",
        "method": "POST",
        "description": "Trigger Power Lunch matching for a conference",
        "headers": {
            ADMIN_KEY_HEADER: "Required. Admin API key for authentication.",
            "Content-Type": "application/json",
        },
        "body": {
            "conferenceId": {"type": "string", "required": True, "description": "The conference identifier"},
            "lunchDate": {
                "type": "string",
                "required": True,
                "format": "YYYY-MM-DD",
                "description": "The date for Power Lunch matching",
            },
            "sendNotifications": {
                "type": "boolean",
                "required": False,
                "default": True,
                "description": "Whether to send push notifications to matched users",
            },
        },
        "responses": {
            "200": "Matching completed successfully",
            "400": "Invalid request body",
            "401": "Unauthorized - invalid or missing API key",
            "500": "Internal server error",
        },
    }


@app.post("/v1/admin/match-lunches/reminders")
def send_reminder(
    payload: ReminderRequest,
    db: Session = Depends(get_db),
    store: RegistrationStore = Depends(get_store),
    sender: PushSender = Depends(get_push_sender),
):
    result = NotificationFanout(store, sender).send_reminder(
        payload.conference_id, payload.group_id, payload.minutes_before
    )
    status = "success" if result.success else "failed"
    write_audit_log(
        db, ADMIN_ACTOR, "send_reminder", "group", payload.group_id, status,
        {"conferenceId": payload.conference_id, "sent": result.notifications_sent},
    )
    if not result.group_found:
        raise HTTPException(status_code=404, detail="Group not found")
    if not result.success:
        raise HTTPException(status_code=500, detail=f"Reminder failed: {result.error}")
    return {"success": True, "groupId": payload.group_id, "notificationsSent": result.notifications_sent}


@app.get("/v1/admin/conferences/{conference_id}/groups")
def list_groups(conference_id: str, lunch_date: str | None = None, store: RegistrationStore = Depends(get_store)):
    groups = store.list_groups(conference_id, lunch_date)
    return {"conferenceId": conference_id, "groups": [g.to_dict() for g in groups]}


@app.get("/v1/admin/conferences/{conference_id}/groups/{group_id}")
def get_group(conference_id: str, group_id: str, store: RegistrationStore = Depends(get_store)):
    found = store.get_group_with_members(conference_id, group_id)
    if found is None:
        raise HTTPException(status_code=404, detail="Group not found")
    group, members = found
    return {"group": group.to_dict(), "members": [m.to_dict() for m in members]}


@app.post("/v1/admin/conferences/{conference_id}/registrations", status_code=201)
def create_registration(
    conference_id: str,
    payload: RegistrationCreate,
    db: Session = Depends(get_db),
    store: RegistrationStore = Depends(get_store),
):
    row = store.create_registration(conference_id, payload)
    write_audit_log(db, ADMIN_ACTOR, "create_registration", "registration", row.id, "success",
                    {"conferenceId": conference_id, "lunchDate": row.lunch_date})
    return row.to_dict()


@app.get("/v1/conferences/{conference_id}/networking-suggestions")
def networking_suggestions(
    conference_id: str,
    request: Request,
    interests: str = "",
    role: str | None = None,
    goals: str = "",
    track: str | None = None,
    limit: int = 5,
    store: RegistrationStore = Depends(get_store),
):
    check_rate_limit(request, "networking_suggestions", limit=60, period_seconds=60)
    interest_list = [x.strip() for x in interests.split(",") if x.strip()]
    if not interest_list:
        raise HTTPException(status_code=400, detail="Interests are required")
    tool_input = NetworkingToolInput(
        user_interests=interest_list,
        user_role=role or None,
        networking_goals=[x.strip() for x in goals.split(",") if x.strip()],
        conference_track=track or None,
    )
    return {"success": True, "suggestions": suggest_connections(store, conference_id, tool_input, limit)}


@app.get("/health")
def health_check():
    return {"status": "ok"}
