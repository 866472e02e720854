"""
HTTP API

aiohttp application exposing TelemetryCore to the firmware and the mobile
client on the LAN. PawsErrors become ``{"error": kind, "message": ...}``
with the error's status code.
"""

import json
from datetime import datetime, timezone
from typing import Any, Callable

from aiohttp import web

from paws_server.common.exceptions import PawsError, ValidationError
from paws_server.common.logging_setup import get_service_logger
from paws_server.common.timestamp import to_iso, utc_now

from .core import TelemetryCore
from .models import ActionRequest, FeedingSchedule, PushedAcknowledgement, parse_payload

logger = get_service_logger("http")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


@web.middleware
async def cors_middleware(request: web.Request, handler) -> web.StreamResponse:
    if request.method == "OPTIONS":
        return web.Response(status=204, headers=CORS_HEADERS)
    try:
        response = await handler(request)
    except web.HTTPException as e:
        e.headers.update(CORS_HEADERS)
        raise
    response.headers.update(CORS_HEADERS)
    return response


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except PawsError as e:
        if e.status >= 500:
            logger.error(f"{request.method} {request.path} failed: {e}")
        else:
            logger.info(f"{request.method} {request.path} rejected: {e}")
        return web.json_response(e.to_dict(), status=e.status)


async def read_json(request: web.Request, default: Any = None) -> Any:
    """Request body as JSON; an empty body yields ``default``"""
    text = await request.text()
    if not text.strip():
        return default
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Request body is not valid JSON: {e}") from e


class ApiHandlers:
    """Route handlers bound to one TelemetryCore"""

    def __init__(
        self,
        core: TelemetryCore,
        stats: Callable[[], dict] | None = None,
    ):
        self.core = core
        self.stats = stats
        self.started_at = datetime.now(timezone.utc)

    async def health(self, request: web.Request) -> web.Response:
        uptime = (utc_now() - self.started_at).total_seconds()
        return web.json_response({
            "status": "healthy",
            "service": "paws",
            "uptime": int(uptime),
            "timestamp": to_iso(utc_now()),
        })

    async def get_stats(self, request: web.Request) -> web.Response:
        return web.json_response(self.stats() if self.stats else {})

    async def list_documents(self, request: web.Request) -> web.Response:
        return web.json_response(await self.core.list_documents())

    async def get_document(self, request: web.Request) -> web.Response:
        value = await self.core.get_document(request.match_info["name"])
        return web.json_response(value)

    async def put_document(self, request: web.Request) -> web.Response:
        body = await read_json(request, default={})
        stored = await self.core.put_document(request.match_info["name"], body)
        return web.json_response(stored)

    async def merge_document(self, request: web.Request) -> web.Response:
        body = await read_json(request, default={})
        merged = await self.core.merge_document(request.match_info["name"], body)
        return web.json_response(merged)

    async def delete_document(self, request: web.Request) -> web.Response:
        await self.core.delete_document(request.match_info["name"])
        return web.json_response({"ok": True})

    async def dashboard(self, request: web.Request) -> web.Response:
        return web.json_response(await self.core.get_dashboard())

    async def notifications(self, request: web.Request) -> web.Response:
        return web.json_response(await self.core.get_notifications())

    async def acknowledge_pushed(self, request: web.Request) -> web.Response:
        body = parse_payload(PushedAcknowledgement, await read_json(request, default={}))
        count = await self.core.acknowledge_notifications_pushed(body.times)
        return web.json_response({"ok": True, "acknowledged": count})

    async def update_settings(self, request: web.Request) -> web.Response:
        settings = await self.core.update_settings(await read_json(request, default={}))
        return web.json_response({"ok": True, "settings": settings})

    async def save_feeding_schedule(self, request: web.Request) -> web.Response:
        schedule = parse_payload(FeedingSchedule, await read_json(request, default={}))
        saved = await self.core.save_feeding_schedule(
            weight=schedule.weight,
            meal1_time=schedule.meal1_time,
            meal2_time=schedule.meal2_time,
            meal_amount=schedule.meal_amount,
        )
        return web.json_response({"ok": True, "feeding": saved})

    async def record_action(self, request: web.Request) -> web.Response:
        body = parse_payload(ActionRequest, await read_json(request, default={}))
        dashboard = await self.core.record_action(body.action)
        return web.json_response({"ok": True, "dashboard": dashboard})

    async def analysis(self, request: web.Request) -> web.Response:
        return web.json_response(await self.core.get_analysis())

    async def assistant_context(self, request: web.Request) -> web.Response:
        return web.json_response(await self.core.assistant_context())


def create_app(
    core: TelemetryCore,
    stats: Callable[[], dict] | None = None,
) -> web.Application:
    """Build the aiohttp application for a TelemetryCore"""
    app = web.Application(middlewares=[cors_middleware, error_middleware])
    handlers = ApiHandlers(core, stats)

    router = app.router
    router.add_get("/health", handlers.health)
    router.add_get("/stats", handlers.get_stats)

    router.add_get("/data", handlers.list_documents)
    router.add_get("/data/{name:.+}", handlers.get_document)
    router.add_put("/data/{name:.+}", handlers.put_document)
    router.add_post("/data/{name:.+}", handlers.put_document)
    router.add_patch("/data/{name:.+}", handlers.merge_document)
    router.add_delete("/data/{name:.+}", handlers.delete_document)

    router.add_get("/dashboard", handlers.dashboard)
    router.add_get("/notifications", handlers.notifications)
    router.add_post("/notifications/pushed", handlers.acknowledge_pushed)
    router.add_post("/settings", handlers.update_settings)
    router.add_post("/feeding/schedule", handlers.save_feeding_schedule)
    router.add_post("/actions", handlers.record_action)
    router.add_get("/analysis", handlers.analysis)
    router.add_get("/assistant/context", handlers.assistant_context)

    return app
