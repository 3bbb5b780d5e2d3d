"""
LLM model catalog backed by AVAILABLE_MODELS / DEFAULT_MODEL.
"""

import json
from typing import Any, Optional

from devhub.core.config import ModelSettings, settings
from devhub.core.constants import DEFAULT_MODEL, DEFAULT_MODELS


def _parse_model_list(raw: str) -> list[str]:
    raw = raw.strip()
    if not raw:
        return []
    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            return [str(m).strip() for m in parsed if str(m).strip()]
    return [m.strip() for m in raw.split(",") if m.strip()]


def get_available_models(config: Optional[ModelSettings] = None) -> list[str]:
    config = config or settings.models
    return _parse_model_list(config.available_models) or list(DEFAULT_MODELS)


def get_default_model(config: Optional[ModelSettings] = None) -> str:
    config = config or settings.models
    return config.default_model.strip() or DEFAULT_MODEL


def _label(model: str) -> str:
    name = model.split("/", 1)[-1]
    return name.replace("-", " ").title()


def get_model_options(config: Optional[ModelSettings] = None) -> list[dict[str, Any]]:
    """Models as select options: value, label and provider."""
    return [
        {
            "value": model,
            "label": _label(model),
            "provider": model.split("/", 1)[0] if "/" in model else "unknown",
        }
        for model in get_available_models(config)
    ]


def is_model_available(model: str, config: Optional[ModelSettings] = None) -> bool:
    return model in get_available_models(config)


def get_fallback_model(model: Optional[str], config: Optional[ModelSettings] = None) -> str:
    """The requested model when it is offered, otherwise the default."""
    if model and is_model_available(model, config):
        return model
    return get_default_model(config)
