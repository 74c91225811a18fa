"""OpenTelemetry tracing for Brief Buddy, routed through Agent Framework."""

from __future__ import annotations

import logging
from importlib import import_module

from .config import TracingSettings

logger = logging.getLogger(__name__)

_initialized = False


def initialize_tracing(settings: TracingSettings) -> bool:
    """Export model spans to the configured OTLP collector, once per process.

    Prompts and replies carry the client's contact details, so they are only
    attached to spans when ``capture_sensitive`` is set.
    """

    global _initialized
    if _initialized:
        return False
    if not settings.enabled:
        logger.debug("No OTLP endpoint configured; tracing disabled.")
        return False

    try:
        module = import_module("agent_framework.observability")
        module.setup_observability(
            otlp_endpoint=settings.endpoint,
            enable_sensitive_data=settings.capture_sensitive,
        )
    except Exception as exc:
        logger.warning("Could not start tracing to %s: %s", settings.endpoint, exc)
        return False

    _initialized = True
    logger.info(
        "Tracing brief conversations to %s (sensitive data %s)",
        settings.endpoint,
        "on" if settings.capture_sensitive else "off",
    )
    return True
