"""Posthog client utility for OpenAI LLM analytics."""

from __future__ import annotations

import logging
from typing import Optional, TYPE_CHECKING, Any

from app.utils.config import Settings
from app.utils.singleton import get_singleton, singleton

if TYPE_CHECKING:
    from posthog import Posthog

# Initialize settings
settings = Settings()

POSTHOG_SINGLETON = "posthog_client"
OPENAI_SINGLETON = "openai_client"


def _create_posthog_client() -> Optional[Posthog]:
    # Only enable PostHog in staging and production
    if settings.app_env not in ["staging", "prod", "production"]:
        return None

    if not settings.posthog_api_key:
        logging.warning(
            "Posthog API key not configured. Posthog logging will be disabled."
        )
        return None

    try:
        from posthog import Posthog

        return Posthog(
            project_api_key=settings.posthog_api_key,
            host=settings.posthog_api_url,
        )
    except Exception as e:
        logging.error(f"Failed to initialize Posthog client: {e}")
        return None


def get_posthog_client() -> Optional[Posthog]:
    """Get or initialize the Posthog client."""
    return singleton(POSTHOG_SINGLETON, _create_posthog_client)


def _create_openai_client() -> Any:
    posthog_client = get_posthog_client()

    if not posthog_client:
        from openai import AsyncOpenAI

        return AsyncOpenAI(
            api_key=settings.openai_api_key or None,
            base_url=settings.openai_api_base_url,
            timeout=settings.llm_request_timeout,
        )

    from posthog.ai.openai import AsyncOpenAI

    return AsyncOpenAI(
        api_key=settings.openai_api_key or None,
        base_url=settings.openai_api_base_url,
        timeout=settings.llm_request_timeout,
        posthog_client=posthog_client,
    )


def get_openai_client() -> Any:
    """
    Get the shared OpenAI client. Wraps with Posthog for automatic LLM
    analytics if enabled.
    """
    return singleton(OPENAI_SINGLETON, _create_openai_client)


def get_posthog_kwargs(
    distinct_id: str, trace_id: str, properties: dict[str, Any]
) -> dict[str, Any]:
    """
    Get Posthog-specific keyword arguments for OpenAI client calls.
    Returns an empty dict if Posthog is disabled.
    """
    posthog_client = get_posthog_client()
    if not posthog_client:
        return {}

    return {
        "posthog_distinct_id": distinct_id,
        "posthog_trace_id": trace_id,
        "posthog_properties": properties,
    }


def shutdown_posthog() -> None:
    """Flush and shut down the Posthog client if one was created."""
    posthog_client = get_singleton(POSTHOG_SINGLETON)
    if posthog_client:
        try:
            posthog_client.shutdown()
        except Exception as e:
            logging.error(f"Error shutting down Posthog client: {e}")
