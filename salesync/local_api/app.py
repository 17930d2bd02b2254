"""
Local API - HTTP surface for the presentation layer

This FastAPI application exposes the session and sync operations to a
local UI. It never talks to the remote service itself; every call goes
through the SyncContext services.

Serve on port 8001 (the status bridge uses 8002).
"""

import logging
from typing import Any, List, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..services.context import SyncContext
from ..services.errors import SaleSyncError
from ..services.models import DEFAULT_COLOR, Record, parse_datetime

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("LocalAPI")


class Credentials(BaseModel):
    username: str = ""
    password: str = ""


class RecordBody(BaseModel):
    display_name: str = Field(..., alias="monthName")
    color_tag: str = Field(DEFAULT_COLOR, alias="color")
    config: Any = Field(default_factory=dict)
    grouped_payload: Any = Field(default_factory=list, alias="groupedData")
    raw_payload: Any = Field(default_factory=list, alias="rawData")
    imported_at: Optional[str] = Field(None, alias="importedAt")

    def to_record(self, record_id: str) -> Record:
        return Record(
            record_id=record_id,
            display_name=self.display_name,
            color_tag=self.color_tag,
            config=self.config,
            grouped_payload=self.grouped_payload,
            raw_payload=self.raw_payload,
            imported_at=parse_datetime(self.imported_at),
        )


def create_app(context: SyncContext) -> FastAPI:
    app = FastAPI(title="salesync local API")
    app.state.context = context

    @app.exception_handler(SaleSyncError)
    async def sync_error_handler(request: Request, exc: SaleSyncError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.message, "code": exc.code},
        )

    @app.get("/health")
    async def health():
        return {"status": "ok", "online": context.monitor.is_reachable()}

    @app.get("/api/status")
    async def get_status():
        identity = context.session.identity
        return {
            **context.engine.get_sync_status(),
            "authenticated": context.session.is_authenticated(),
            "identity": identity.to_dict() if identity else None,
            "network": context.monitor.get_status(),
        }

    # ==================== Session ====================

    @app.post("/api/auth/register", status_code=201)
    async def register(body: Credentials):
        identity = await context.session.register(body.username, body.password)
        return {"success": True, "user": identity.to_dict()}

    @app.post("/api/auth/login")
    async def login(body: Credentials):
        identity = await context.session.login(body.username, body.password)
        return {"success": True, "user": identity.to_dict()}

    @app.post("/api/auth/logout")
    async def logout():
        await context.engine.logout()
        return {"success": True}

    @app.get("/api/auth/me")
    async def me():
        identity = context.session.require_identity()
        return {"success": True, "user": identity.to_dict()}

    # ==================== Records ====================

    @app.get("/api/records")
    async def list_records():
        records: List[Record] = await context.engine.download_all_data()
        return {"success": True, "data": [r.to_dict() for r in records]}

    @app.put("/api/records/{record_id}")
    async def put_record(record_id: str, body: RecordBody):
        outcome = await context.engine.upload_record(body.to_record(record_id))
        return outcome.to_dict()

    @app.delete("/api/records/{record_id}")
    async def delete_record(record_id: str):
        outcome = await context.engine.delete_record(record_id)
        return outcome.to_dict()

    @app.post("/api/sync")
    async def sync_pending():
        report = await context.engine.sync_pending_operations()
        return report.to_dict()

    return app


async def start_local_api(context: SyncContext, host: str = "127.0.0.1", port: int = 8001):
    """Serve the local API on the current event loop."""
    import uvicorn
    logger.info(f"Starting local API on http://{host}:{port}")
    config = uvicorn.Config(create_app(context), host=host, port=port, log_level="info")
    await uvicorn.Server(config).serve()
