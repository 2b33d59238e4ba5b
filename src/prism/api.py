from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import REGISTRY, CollectorRegistry, make_asgi_app
from pydantic import BaseModel

from prism.aggregator import build_dashboard
from prism.config import Config
from prism.errors import AdapterError
from prism.metrics import AdapterMetrics
from prism.models import CLAUDE, GEMINI, GEMINI_MONITORING, OPENAI, IntegrationSnapshot
from prism.provider.registry import build_adapters
from prism.service import UsageService

logger = structlog.get_logger()


# credential fields are left untyped; missing, null or mistyped values
# reach the adapter, which answers with a CredentialError
class ClaudeCredential(BaseModel):
    adminKey: "Any" = None


class ApiKeyCredential(BaseModel):
    apiKey: "Any" = None


class MonitoringCredential(BaseModel):
    # raw JSON text or the parsed service account object
    serviceAccountJson: "Any" = None
    projectId: "Any" = None


router = APIRouter()


def _service(request: "Request") -> "UsageService":
    return request.app.state.usage_service


@router.post("/integrations/claude")
async def connect_claude(
    body: "ClaudeCredential", request: "Request"
) -> "dict[str, Any]":
    record = await _service(request).fetch_usage(CLAUDE, body.model_dump())
    return record.to_dict()


@router.post("/integrations/gemini")
async def connect_gemini(
    body: "ApiKeyCredential", request: "Request"
) -> "dict[str, Any]":
    record = await _service(request).fetch_usage(GEMINI, body.model_dump())
    return record.to_dict()


@router.post("/integrations/gemini-monitoring")
async def connect_gemini_monitoring(
    body: "MonitoringCredential", request: "Request"
) -> "dict[str, Any]":
    record = await _service(request).fetch_usage(GEMINI_MONITORING, body.model_dump())
    return record.to_dict()


@router.post("/integrations/openai")
async def connect_openai(
    body: "ApiKeyCredential", request: "Request"
) -> "dict[str, Any]":
    record = await _service(request).fetch_usage(OPENAI, body.model_dump())
    return record.to_dict()


@router.post("/dashboard")
async def dashboard(body: "dict[str, Any]", request: "Request") -> "Any":
    """
    derives the dashboard views from a snapshot of the caller's store.
    """
    try:
        snapshot = IntegrationSnapshot.from_dict(body)
    except (ValueError, TypeError, AttributeError) as exc:
        logger.info("dashboard_snapshot_invalid", error=str(exc))
        return JSONResponse({"error": "Invalid integration snapshot"}, status_code=400)
    config: "Config" = request.app.state.config
    return build_dashboard(snapshot, token_scale=config.gemini_token_scale).to_dict()


@router.get("/health")
async def health() -> "dict[str, str]":
    return {"status": "ok"}


async def adapter_error_handler(
    request: "Request", exc: "AdapterError"
) -> "JSONResponse":
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


async def validation_error_handler(
    request: "Request", exc: "RequestValidationError"
) -> "JSONResponse":
    # a body that is not a JSON object
    logger.info("request_body_invalid", path=request.url.path)
    return JSONResponse({"error": "Invalid request body"}, status_code=400)


def create_app(
    config: "Config | None" = None,
    service: "UsageService | None" = None,
    registry: "CollectorRegistry" = REGISTRY,
) -> "FastAPI":
    """
    builds the application. Tests pass their own service and registry.
    """
    config = config or Config.from_env()
    if service is None:
        service = UsageService(build_adapters(config), AdapterMetrics(registry))

    @asynccontextmanager
    async def lifespan(app: "FastAPI"):
        logger.info("app_started", providers=service.providers)
        yield
        await service.close()
        logger.info("shutdown_complete")

    app = FastAPI(title="prism", lifespan=lifespan)
    app.state.config = config
    app.state.usage_service = service
    app.add_exception_handler(AdapterError, adapter_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.include_router(router, prefix="/api")
    app.mount("/metrics", make_asgi_app(registry=registry))
    return app
