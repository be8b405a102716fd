"""Shared FastAPI dependencies.

Separated to avoid circular imports between route modules.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import lru_cache

from calls.registry import GLOBAL_CALL_REGISTRY, CallRegistry
from config.settings import get_settings
from integrations.realtime_client import RealtimeConnection, RealtimeTransport
from integrations.webhook import CallSummaryWebhook
from prompts.loader import load_prompt


def get_registry() -> CallRegistry:
    return GLOBAL_CALL_REGISTRY


@lru_cache(maxsize=1)
def _webhook_factory() -> CallSummaryWebhook:
    return CallSummaryWebhook.from_settings(get_settings())


def get_webhook() -> CallSummaryWebhook:
    return _webhook_factory()


def get_realtime_factory() -> Callable[[], RealtimeTransport]:
    settings = get_settings()
    return lambda: RealtimeConnection.from_settings(settings)


@lru_cache(maxsize=1)
def get_instructions() -> str:
    return load_prompt(get_settings().instructions_file)
