"""Azure OpenAI upstream client wrapper used by the completion handler."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack
from dataclasses import dataclass
from typing import Any

import httpx
import openai
from openai import AsyncAzureOpenAI

from .errors import UpstreamError, UpstreamHTTPError, UpstreamTransportError

logger = logging.getLogger("completion-proxy")


def upstream_error_from(exc: openai.APIError) -> UpstreamError:
    """Map an SDK failure onto the proxy's upstream error types."""
    if isinstance(exc, openai.APIStatusError):
        body = exc.body
        message = body.get("message") if isinstance(body, dict) else None
        return UpstreamHTTPError(message or exc.message, status_code=exc.status_code)
    # The SDK wraps httpx failures; the chained cause says what actually went wrong.
    cause = exc.__cause__
    return UpstreamTransportError((str(cause) if cause is not None else "") or exc.message)


@dataclass
class AzureUpstream:
    endpoint: str
    api_key: str
    api_version: str
    timeout_s: float = 600.0
    http_client: httpx.AsyncClient | None = None

    def __post_init__(self) -> None:
        # Requests go to {endpoint}/openai/deployments/{model}/chat/completions
        # with the api-key header and the api-version query parameter.
        self.client = AsyncAzureOpenAI(
            azure_endpoint=self.endpoint,
            api_key=self.api_key,
            api_version=self.api_version,
            timeout=self.timeout_s,
            max_retries=0,
            http_client=self.http_client,
        )

    async def complete(self, *, deployment: str, payload: dict[str, Any]) -> Any:
        """Send a blocking completion call and return the decoded JSON body."""
        try:
            raw = await self.client.chat.completions.with_raw_response.create(
                model=deployment, **payload
            )
        except openai.APIError as e:
            raise upstream_error_from(e) from e
        return raw.http_response.json()

    async def stream(self, *, deployment: str, payload: dict[str, Any]) -> UpstreamStream:
        """Open a streaming completion and return its raw bytes as an UpstreamStream.

        The upstream response is opened before this returns, so a rejected
        request surfaces as an UpstreamError rather than a broken stream.
        """
        stack = AsyncExitStack()
        try:
            response = await stack.enter_async_context(
                self.client.chat.completions.with_streaming_response.create(
                    model=deployment, **payload
                )
            )
        except openai.APIError as e:
            await stack.aclose()
            raise upstream_error_from(e) from e
        return UpstreamStream(response.iter_bytes(), stack, deployment=deployment)

    async def close(self) -> None:
        await self.client.close()


class UpstreamStream:
    """Raw bytes of an opened upstream response.

    `aclose` releases the upstream response whether or not iteration ever
    started; it is safe to call more than once.
    """

    def __init__(
        self,
        chunks: AsyncIterator[bytes],
        stack: AsyncExitStack,
        *,
        deployment: str,
    ) -> None:
        self._chunks = chunks
        self._stack = stack
        self.deployment = deployment

    async def __aiter__(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._chunks:
                yield chunk
        except httpx.HTTPError as e:
            logger.error("Stream from deployment %s aborted: %s", self.deployment, e)
            raise
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        await self._stack.aclose()
