import pytest

from completion_proxy.errors import InvalidRequestError, UpstreamError
from completion_proxy.handler import (
    build_upstream_payload,
    normalize_completion,
    resolve_deployment,
)
from completion_proxy.models import ChatCompletionRequest

DEPLOYMENTS = {"gpt-4o": "gpt4o-prod", "Phi-4-multimodal-instruct": "phi4-mm"}


def _request(**kwargs) -> ChatCompletionRequest:
    body = {"model": "gpt-4o", "messages": [{"role": "user", "content": "hi"}]}
    body.update(kwargs)
    return ChatCompletionRequest.model_validate(body)


def test_resolve_known_model() -> None:
    assert resolve_deployment(DEPLOYMENTS, "gpt-4o") == "gpt4o-prod"


@pytest.mark.parametrize("model", ["GPT-4o", "gpt-4", "gpt-4o ", "", None])
def test_resolve_unknown_model(model: str | None) -> None:
    with pytest.raises(InvalidRequestError) as exc:
        resolve_deployment(DEPLOYMENTS, model)
    assert exc.value.status_code == 400
    assert exc.value.code == "unsupported_model"


def test_defaults_applied_when_omitted() -> None:
    payload = build_upstream_payload(_request())
    assert payload["temperature"] == 1
    assert payload["max_tokens"] == 4096
    assert payload["top_p"] == 1
    assert "stream" not in payload


def test_zero_values_preserved() -> None:
    payload = build_upstream_payload(_request(temperature=0, max_tokens=0, top_p=0))
    assert payload["temperature"] == 0
    assert payload["max_tokens"] == 0
    assert payload["top_p"] == 0


def test_explicit_null_takes_default() -> None:
    payload = build_upstream_payload(_request(temperature=None, top_p=None))
    assert payload["temperature"] == 1
    assert payload["top_p"] == 1


def test_stream_flag_and_message_passthrough() -> None:
    parts = [
        {"type": "text", "text": "what is this?"},
        {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}},
    ]
    payload = build_upstream_payload(
        _request(stream=True, messages=[{"role": "user", "content": parts, "name": "bob"}])
    )
    assert payload["stream"] is True
    assert payload["messages"] == [{"role": "user", "content": parts, "name": "bob"}]


def test_normalize_overrides_model_and_object() -> None:
    upstream = {
        "id": "chatcmpl-1",
        "object": "something.else",
        "model": "gpt4o-prod-2024-08-06",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": "hello"}}],
        "usage": {"total_tokens": 3},
    }
    out = normalize_completion(upstream, "gpt-4o").model_dump()
    assert out["model"] == "gpt-4o"
    assert out["object"] == "chat.completion"
    assert out["id"] == "chatcmpl-1"
    assert out["usage"] == {"total_tokens": 3}
    assert out["choices"] == upstream["choices"]


@pytest.mark.parametrize("upstream", [{"choices": []}, {"id": "x"}, {"choices": None}])
def test_normalize_rejects_empty_choices(upstream: dict) -> None:
    with pytest.raises(UpstreamError) as exc:
        normalize_completion(upstream, "gpt-4o")
    assert exc.value.status_code == 500
    assert "empty choices" in exc.value.message
    assert exc.value.message.startswith("Azure API Error: ")


def test_normalize_rejects_non_object() -> None:
    with pytest.raises(UpstreamError):
        normalize_completion(["nope"], "gpt-4o")
