"""Environment-backed settings, model deployment table and logging setup."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

DEFAULT_API_VERSION = "2025-01-01-preview"

# Public model name -> Azure deployment name.
DEFAULT_MODEL_DEPLOYMENTS: dict[str, str] = {
    "Phi-4-multimodal-instruct": "Phi-4-multimodal-instruct",
    "gpt-4o": "gpt-4o",
    "Phi-3.5-vision-instruct": "Phi-3.5-vision-instruct",
}


@dataclass(frozen=True)
class Settings:
    host: str = os.getenv("HOST", "0.0.0.0")
    port: int = int(os.getenv("PORT", "8080"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    azure_endpoint: str | None = os.getenv("AZURE_ENDPOINT")
    azure_api_key: str | None = os.getenv("AZURE_API_KEY")
    azure_api_version: str = os.getenv("AZURE_API_VERSION", DEFAULT_API_VERSION)

    upstream_timeout_s: float = float(os.getenv("UPSTREAM_TIMEOUT_S", "600"))


def load_model_deployments(raw: str | None = None) -> Mapping[str, str]:
    """Load the model -> deployment table from MODEL_DEPLOYMENTS_JSON.

    The returned mapping is read-only; it is built once at startup and shared
    by every request.
    """
    if raw is None:
        raw = os.getenv("MODEL_DEPLOYMENTS_JSON")
    if raw is None:
        return MappingProxyType(dict(DEFAULT_MODEL_DEPLOYMENTS))

    try:
        items = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"MODEL_DEPLOYMENTS_JSON is not valid JSON: {e}") from e
    if not isinstance(items, dict):
        raise ValueError("MODEL_DEPLOYMENTS_JSON must be a JSON object")

    deployments: dict[str, str] = {}
    for model, deployment in items.items():
        if not isinstance(deployment, str) or not deployment:
            raise ValueError(f"Deployment for model {model!r} must be a non-empty string")
        deployments[model] = deployment
    return MappingProxyType(deployments)


def setup_logging(settings: Settings) -> logging.Logger:
    """Configure root logging and return the service logger."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger = logging.getLogger("completion-proxy")
    logger.debug("Logging level set to %s", settings.log_level)
    return logger
