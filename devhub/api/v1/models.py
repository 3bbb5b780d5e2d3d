"""
Model catalog endpoint.
"""

from typing import Any

from fastapi import APIRouter

from devhub.services.model_catalog import (
    get_available_models,
    get_default_model,
    get_model_options,
)

router = APIRouter()


@router.get("/models")
async def list_models() -> dict[str, Any]:
    """Models the chat can use and the one selected by default."""
    return {
        "success": True,
        "data": {
            "models": get_available_models(),
            "defaultModel": get_default_model(),
            "options": get_model_options(),
        },
    }
