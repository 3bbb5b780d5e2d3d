"""
Unit tests for the model catalog.
"""

import pytest
from httpx import AsyncClient

from devhub.core.config import ModelSettings
from devhub.core.constants import DEFAULT_MODEL, DEFAULT_MODELS
from devhub.services.model_catalog import (
    get_available_models,
    get_default_model,
    get_fallback_model,
    get_model_options,
    is_model_available,
)


def _config(models: str = "", default: str = "") -> ModelSettings:
    return ModelSettings(AVAILABLE_MODELS=models, DEFAULT_MODEL=default)


def test_defaults_when_unset() -> None:
    config = _config()
    assert get_available_models(config) == DEFAULT_MODELS
    assert get_default_model(config) == DEFAULT_MODEL


def test_comma_separated_list() -> None:
    assert get_available_models(_config(" a/one , b/two ,")) == ["a/one", "b/two"]


def test_json_list() -> None:
    assert get_available_models(_config('["a/one", "b/two"]')) == ["a/one", "b/two"]


def test_fallback_model() -> None:
    config = _config("a/one,b/two", "a/one")
    assert get_fallback_model("b/two", config) == "b/two"
    assert get_fallback_model("c/three", config) == "a/one"
    assert get_fallback_model(None, config) == "a/one"
    assert is_model_available("b/two", config)


def test_model_options() -> None:
    options = get_model_options(_config("meta-llama/llama-3-70b,local"))
    assert options[0] == {"value": "meta-llama/llama-3-70b", "label": "Llama 3 70B", "provider": "meta-llama"}
    assert options[1]["provider"] == "unknown"


@pytest.mark.asyncio
async def test_models_endpoint(async_client: AsyncClient) -> None:
    response = await async_client.get("/api/v1/models")
    assert response.status_code == 200

    data = response.json()
    assert data["success"] is True
    assert isinstance(data["data"]["models"], list)
    assert data["data"]["defaultModel"]
