"""FastAPI application wiring for the Azure chat completion proxy."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Annotated

import httpx
import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse

from .config import Settings, load_model_deployments, setup_logging
from .errors import InvalidRequestError, ProxyError
from .handler import handle_chat_completion
from .models import ChatCompletionRequest
from .upstream_azure import AzureUpstream

logger = logging.getLogger("completion-proxy")


def get_deployments(request: Request) -> Mapping[str, str]:
    return request.app.state.deployments


def get_upstream(request: Request) -> AzureUpstream | None:
    return request.app.state.upstream


def validation_message(exc: RequestValidationError) -> str:
    """Summarize pydantic errors in the wording clients of this endpoint expect."""
    errors = exc.errors()
    for err in errors:
        if err.get("type") == "json_invalid":
            return "Request body is not valid JSON"
    for err in errors:
        if "messages" in err.get("loc", ()):
            return "Missing or invalid messages array"
    if errors:
        err = errors[0]
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        return f"Invalid request: {loc or 'body'}: {err.get('msg', 'invalid value')}"
    return "Invalid request"


async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
    logger.error(
        "%s %s failed with %s: %s",
        request.method,
        request.url.path,
        exc.status_code,
        exc.message,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(exclude_none=True),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return await proxy_error_handler(request, InvalidRequestError(validation_message(exc)))


def create_app(
    settings: Settings | None = None,
    deployments: Mapping[str, str] | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Build the proxy app. `http_client` overrides the transport to Azure."""
    settings = settings or Settings()
    if deployments is None:
        deployments = load_model_deployments()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        upstream: AzureUpstream | None = None
        if settings.azure_endpoint and settings.azure_api_key:
            upstream = AzureUpstream(
                endpoint=settings.azure_endpoint,
                api_key=settings.azure_api_key,
                api_version=settings.azure_api_version,
                timeout_s=settings.upstream_timeout_s,
                http_client=http_client,
            )
        else:
            logger.warning("AZURE_ENDPOINT or AZURE_API_KEY not set; completions will fail")
        app.state.upstream = upstream
        logger.info("Serving %d model(s): %s", len(deployments), ", ".join(deployments))
        yield
        if upstream is not None:
            await upstream.close()

    app = FastAPI(title="Azure Completion Proxy", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.deployments = deployments
    app.state.upstream = None

    app.add_exception_handler(ProxyError, proxy_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    @app.get("/health")
    def health() -> dict[str, str]:
        """Return a lightweight readiness signal for probes and monitors."""
        return {"status": "ok"}

    @app.post("/v1/chat/completions", response_model=None)
    async def chat_completions(
        body: ChatCompletionRequest,
        deployments: Annotated[Mapping[str, str], Depends(get_deployments)],
        upstream: Annotated[AzureUpstream | None, Depends(get_upstream)],
    ) -> JSONResponse | StreamingResponse:
        """Translate an OpenAI chat completion request into an Azure deployment call."""
        return await handle_chat_completion(body, deployments=deployments, upstream=upstream)

    return app


settings = Settings()
setup_logging(settings)
app = create_app(settings)


def run() -> None:
    uvicorn.run(app, host=settings.host, port=settings.port)
