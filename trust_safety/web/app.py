# trust_safety/web/app.py
"""
HTTP-адаптер движка модерации на aiohttp.

Шлюз аутентифицирует пользователя и передает автора запроса в заголовках
X-User-Id / X-User-Role. X-Request-Id и X-Forwarded-For попадают в журнал.
"""
import json
from typing import Any, Dict, Optional, Type, TypeVar

from aiohttp import web
from loguru import logger
from pydantic import BaseModel, ValidationError

from trust_safety.config.settings import settings
from trust_safety.containers import Container, init_resources, shutdown_resources
from trust_safety.services.fault_policy import guarded_store_call
from trust_safety.services.moderation import ModerationOutcome
from trust_safety.utils.logging_setup import setup_logging
from trust_safety.utils.models import Actor, OffenderSummary, RequestContext, UserRole
from trust_safety.web.schemas import BidMessageRequest, JobMessageRequest, JobPostRequest

CONTAINER_KEY = web.AppKey("container", Container)

ModelT = TypeVar("ModelT", bound=BaseModel)


class ApiError(Exception):
    """Ошибка запроса, которая отдается клиенту как {error}."""

    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status
        self.message = message


def _json_error(status: int, message: str) -> web.Response:
    return web.json_response({"error": message}, status=status)


def _outcome_response(outcome: ModerationOutcome, payload: Optional[Dict[str, Any]] = None) -> web.Response:
    return web.json_response(payload or outcome.to_payload(), status=outcome.status)


def actor_from_headers(request: web.Request) -> Actor:
    raw_user_id = request.headers.get("X-User-Id")
    if not raw_user_id:
        raise ApiError(401, "Missing X-User-Id header")
    try:
        user_id = int(raw_user_id)
    except ValueError:
        raise ApiError(401, "Invalid X-User-Id header")

    raw_role = (request.headers.get("X-User-Role") or UserRole.CONSUMER.value).upper()
    try:
        role = UserRole(raw_role)
    except ValueError:
        raise ApiError(401, f"Unknown role: {raw_role}")

    return Actor(user_id=user_id, role=role)


def request_context_from(request: web.Request) -> RequestContext:
    forwarded = request.headers.get("X-Forwarded-For")
    ip = forwarded.split(",")[0].strip() if forwarded else request.remote
    return RequestContext(
        request_id=request.headers.get("X-Request-Id"),
        ip=ip or None,
        user_agent=request.headers.get("User-Agent"),
    )


async def parse_body(request: web.Request, model: Type[ModelT]) -> ModelT:
    try:
        data = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ApiError(400, "Request body must be valid JSON")
    if not isinstance(data, dict):
        raise ApiError(400, "Request body must be a JSON object")
    try:
        return model.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        raise ApiError(400, f"Invalid field '{field}': {first.get('msg')}")


def _int_param(raw: Optional[str], name: str, default: int, minimum: int = 1) -> int:
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ApiError(400, f"{name} must be an integer")
    if value < minimum:
        raise ApiError(400, f"{name} must be >= {minimum}")
    return value


def _job_id(request: web.Request) -> int:
    try:
        return int(request.match_info["job_id"])
    except ValueError:
        raise ApiError(400, "job_id must be an integer")


def _offender_payload(row: OffenderSummary) -> Dict[str, Any]:
    return {
        "userId": row.user_id,
        "blockCount": row.block_count,
        "lastBlockedAt": row.last_blocked_at.isoformat() if row.last_blocked_at else None,
        "riskScore": row.risk_score,
        "restrictedUntil": row.restricted_until.isoformat() if row.restricted_until else None,
    }


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except ApiError as e:
        return _json_error(e.status, e.message)
    except web.HTTPException:
        raise
    except Exception as e:
        logger.exception(f"❌ Необработанная ошибка {request.method} {request.path}: {e}")
        return _json_error(500, "Internal server error")


async def _restriction_guard(container: Container, actor: Actor) -> Optional[web.Response]:
    if actor.is_admin:
        return None
    outcome = await container.moderation_service().check_account_restriction(actor.user_id)
    if outcome is None:
        return None
    logger.info(f"🔒 Запрос отклонен: user_id={actor.user_id} ограничен до {outcome.restricted_until}")
    return _outcome_response(outcome)


# =============================================================================
# HANDLERS
# =============================================================================

async def health_check(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok", "service": settings.logging.service_name})


async def moderate_job_message(request: web.Request) -> web.Response:
    container = request.app[CONTAINER_KEY]
    actor = actor_from_headers(request)
    job_id = _job_id(request)
    body = await parse_body(request, JobMessageRequest)

    restricted = await _restriction_guard(container, actor)
    if restricted is not None:
        return restricted

    outcome = await container.moderation_service().moderate_job_message_send(
        actor, job_id, body.job_status, body.text, request_context_from(request)
    )
    if outcome.action == "ALLOW":
        store = container.store()
        await guarded_store_call(
            "window.record",
            lambda: store.record_message(job_id, actor.user_id, body.text),
            None,
            user_id=actor.user_id,
            job_id=job_id,
        )
    return _outcome_response(outcome)


async def moderate_bid(request: web.Request) -> web.Response:
    container = request.app[CONTAINER_KEY]
    actor = actor_from_headers(request)
    job_id = _job_id(request)
    body = await parse_body(request, BidMessageRequest)

    restricted = await _restriction_guard(container, actor)
    if restricted is not None:
        return restricted

    outcome = await container.moderation_service().moderate_bid_message(
        actor, job_id, body.message, request_context_from(request)
    )
    if outcome.action == "ALLOW":
        store = container.store()
        await guarded_store_call(
            "window.record",
            lambda: store.record_bid(job_id, actor.user_id, body.message),
            None,
            user_id=actor.user_id,
            job_id=job_id,
        )
    return _outcome_response(outcome)


async def moderate_job_post(request: web.Request) -> web.Response:
    container = request.app[CONTAINER_KEY]
    actor = actor_from_headers(request)
    body = await parse_body(request, JobPostRequest)

    restricted = await _restriction_guard(container, actor)
    if restricted is not None:
        return restricted

    result = await container.moderation_service().moderate_job_post(
        actor,
        body.title,
        body.description,
        body.location,
        job_id=body.job_id,
        request_context=request_context_from(request),
    )
    if result.outcome.action == "ALLOW":
        store = container.store()
        await guarded_store_call(
            "window.record",
            lambda: store.record_job(actor.user_id, job_id=body.job_id),
            None,
            user_id=actor.user_id,
            job_id=body.job_id,
        )
    return _outcome_response(result.outcome, result.to_payload())


async def list_message_violations(request: web.Request) -> web.Response:
    container = request.app[CONTAINER_KEY]
    actor = actor_from_headers(request)
    if not actor.is_admin:
        raise ApiError(403, "Admin access required")

    window_minutes = _int_param(request.query.get("windowMinutes"), "windowMinutes", 10)
    min_blocks = _int_param(request.query.get("minBlocks"), "minBlocks", 3)
    limit = _int_param(request.query.get("limit"), "limit", 50)

    offenders = await container.moderation_service().list_message_violation_offenders(
        window_minutes=window_minutes, min_blocks=min_blocks, limit=limit
    )
    return web.json_response(
        {
            "windowMinutes": window_minutes,
            "minBlocks": min_blocks,
            "offenders": [_offender_payload(row) for row in offenders],
        }
    )


# =============================================================================
# APPLICATION
# =============================================================================

def create_app(container: Optional[Container] = None, manage_resources: bool = True) -> web.Application:
    """
    Собирает aiohttp-приложение.

    Args:
        container: DI контейнер (в тестах с подмененным redis_client)
        manage_resources: Проверять Redis при старте и закрывать при остановке
    """
    container = container or Container()

    app = web.Application(middlewares=[error_middleware])
    app[CONTAINER_KEY] = container

    app.router.add_get("/health", health_check)
    app.router.add_post("/v1/moderation/jobs/{job_id}/messages", moderate_job_message)
    app.router.add_post("/v1/moderation/jobs/{job_id}/bids", moderate_bid)
    app.router.add_post("/v1/moderation/jobs", moderate_job_post)
    app.router.add_get("/v1/admin/message-violations", list_message_violations)

    if manage_resources:

        async def on_startup(app: web.Application) -> None:
            await init_resources(app[CONTAINER_KEY])

        async def on_cleanup(app: web.Application) -> None:
            await shutdown_resources(app[CONTAINER_KEY])

        app.on_startup.append(on_startup)
        app.on_cleanup.append(on_cleanup)

    return app


def main() -> None:
    setup_logging(
        level=settings.logging.level,
        format=settings.logging.format,
        quiet_loggers=settings.logging.quiet_loggers,
    )
    app = create_app()
    logger.info(f"🛡️ Starting trust & safety API on {settings.HOST}:{settings.PORT}")
    web.run_app(app, host=settings.HOST, port=settings.PORT, access_log=None)


if __name__ == "__main__":
    main()
