"""Chat completion translation: validate, resolve, forward, normalize."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError
from starlette.types import Receive, Scope, Send

from .errors import InvalidRequestError, ProxyError, UpstreamError, UpstreamTransportError
from .models import ChatCompletionRequest, ChatCompletionResponse
from .upstream_azure import AzureUpstream, UpstreamStream

logger = logging.getLogger("completion-proxy")

DEFAULT_TEMPERATURE = 1
DEFAULT_MAX_TOKENS = 4096
DEFAULT_TOP_P = 1


class PassthroughStreamingResponse(StreamingResponse):
    """Pipes upstream SSE bytes unchanged and always releases the upstream response."""

    def __init__(self, stream: UpstreamStream) -> None:
        super().__init__(stream, media_type="text/event-stream")
        self.upstream = stream

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        # The client can go away before the body iterator is ever started.
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.upstream.aclose()


def _default(value: Any, fallback: Any) -> Any:
    # Only a missing value takes the default; 0 is a real setting.
    return fallback if value is None else value


def resolve_deployment(deployments: Mapping[str, str], model: str | None) -> str:
    """Exact, case-sensitive lookup of the deployment serving `model`."""
    deployment = deployments.get(model) if model is not None else None
    if not deployment:
        raise InvalidRequestError(
            f"Model {model} is not supported" if model else "Missing model",
            code="unsupported_model",
        )
    return deployment


def build_upstream_payload(body: ChatCompletionRequest) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "messages": body.messages,
        "temperature": _default(body.temperature, DEFAULT_TEMPERATURE),
        "max_tokens": _default(body.max_tokens, DEFAULT_MAX_TOKENS),
        "top_p": _default(body.top_p, DEFAULT_TOP_P),
    }
    if body.stream:
        payload["stream"] = True
    return payload


def normalize_completion(data: Any, model: str | None) -> ChatCompletionResponse:
    """Echo the caller's model name and reject completions without choices."""
    if not isinstance(data, dict):
        raise UpstreamError("Azure returned a non-object response body")
    try:
        return ChatCompletionResponse.model_validate(
            {**data, "model": model, "object": "chat.completion"}
        )
    except ValidationError as e:
        if not data.get("choices"):
            raise UpstreamError("Azure returned empty choices array") from e
        raise UpstreamError(f"Azure returned a malformed completion: {e}") from e


async def handle_chat_completion(
    body: ChatCompletionRequest,
    *,
    deployments: Mapping[str, str],
    upstream: AzureUpstream | None,
) -> JSONResponse | StreamingResponse:
    deployment = resolve_deployment(deployments, body.model)

    try:
        if upstream is None:
            raise UpstreamError("Upstream AZURE_ENDPOINT/AZURE_API_KEY not configured")

        payload = build_upstream_payload(body)
        logger.info(
            "Forwarding model %s to deployment %s (stream=%s)",
            body.model,
            deployment,
            bool(body.stream),
        )

        if body.stream:
            stream = await upstream.stream(deployment=deployment, payload=payload)
            return PassthroughStreamingResponse(stream)

        data = await upstream.complete(deployment=deployment, payload=payload)
        completion = normalize_completion(data, body.model)
        return JSONResponse(content=completion.model_dump())
    except ProxyError as e:
        logger.error(
            "Completion for model %s (deployment %s) failed with %s: %s",
            body.model,
            deployment,
            e.status_code,
            e.message,
        )
        raise
    except Exception as e:
        logger.exception(
            "Unexpected failure for model %s (deployment %s)", body.model, deployment
        )
        raise UpstreamTransportError(str(e) or type(e).__name__) from e
