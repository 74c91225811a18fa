"""Thin wrappers around Microsoft Agent Framework chat completion clients.

This module centralizes the integration with the Microsoft Agent Framework
(MAF) so the rest of the application can stay framework-agnostic. The
framework is loaded at runtime based on the configured provider; if the
import fails, a descriptive error is raised to guide the user through the
required dependency.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from importlib import import_module
from typing import (
    Any,
    AsyncIterator,
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
    cast,
)

from .config import ModelSettings


@dataclass(slots=True)
class ChatMessage:
    """Simple representation of a chat message compatible with this app."""

    role: str
    content: str


class ChatBackend(Protocol):
    """Surface of the generation service used by the assistant."""

    async def complete(
        self,
        messages: Iterable[ChatMessage],
        *,
        temperature: Optional[float] = None,
    ) -> ChatMessage: ...

    def stream(
        self,
        messages: Iterable[ChatMessage],
        *,
        temperature: Optional[float] = None,
    ) -> AsyncIterator[str]: ...


class MAFIntegrationError(RuntimeError):
    """Raised when the MAF client cannot be initialized."""


def extract_json_object(raw: str) -> Optional[Dict[str, Any]]:
    """Pull the JSON object out of a completion, tolerating chatter."""

    text = raw.strip()
    if not text:
        return None
    candidate = text
    if not candidate.startswith("{"):
        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end == -1 or end <= start:
            return None
        candidate = text[start:end + 1]
    try:
        payload = json.loads(candidate)
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, dict):
        return None
    return cast(Dict[str, Any], payload)


def _framework() -> Any:
    try:
        return import_module("agent_framework")
    except ModuleNotFoundError as exc:  # pragma: no cover - MAF runtime
        raise MAFIntegrationError(
            "Microsoft Agent Framework is not installed. Reinstall the "
            "project dependencies (e.g. `pip install -e .`)."
        ) from exc


def _coerce_role(role: str) -> Any:
    role_cls = getattr(_framework(), "Role")
    try:
        return role_cls(role)
    except ValueError as exc:
        raise ValueError(
            "Unsupported role for MAF chat message: {role}".format(role=role)
        ) from exc


class MAFChatClient:
    """Wrapper that dispatches chat completion calls through MAF clients."""

    def __init__(self, settings: ModelSettings) -> None:
        self._settings = settings
        self._client = self._create_client(settings)

    @staticmethod
    def _create_client(settings: ModelSettings):
        provider = settings.provider.lower()
        try:
            if provider in {"azure-openai", "azure_openai", "azure"}:
                module = import_module("agent_framework.azure")
                client_cls = getattr(module, "AzureOpenAIChatClient")
                return client_cls(
                    api_key=settings.api_key,
                    deployment_name=settings.model,
                    endpoint=settings.endpoint,
                    api_version=settings.api_version,
                )
            if provider in {"openai", "oai"}:
                module = import_module("agent_framework.openai")
                client_cls = getattr(module, "OpenAIChatClient")
                return client_cls(
                    api_key=settings.api_key,
                    model_id=settings.model,
                    base_url=settings.endpoint,
                )
        except ModuleNotFoundError as exc:  # pragma: no cover - MAF runtime
            missing = exc.name or "a required dependency"
            raise MAFIntegrationError(
                "Microsoft Agent Framework dependency '{missing}' is missing. "
                "Reinstall the project dependencies (e.g. `pip install -e .`)."
                .format(missing=missing)
            ) from exc
        raise MAFIntegrationError(
            f"Unsupported MAF provider '{settings.provider}'."
        )

    @staticmethod
    def _merge_consecutive_roles(
        messages: Iterable[ChatMessage],
    ) -> List[ChatMessage]:
        """Combine adjacent messages that share the same role.

        The system prompt and the per-turn nudge arrive as two system
        messages, and a seeded preview can follow a typed user message; the
        chat templates expect alternating roles, so their content is joined.
        """

        merged: List[ChatMessage] = []
        for message in messages:
            if merged and merged[-1].role == message.role:
                previous = merged[-1]
                previous.content = (
                    f"{previous.content}\n\n{message.content}".strip()
                )
                continue
            merged.append(
                ChatMessage(role=message.role, content=message.content)
            )
        return merged

    def _payload(self, messages: Iterable[ChatMessage]) -> List[Any]:
        message_cls = getattr(_framework(), "ChatMessage")
        return [
            message_cls(role=_coerce_role(msg.role), text=msg.content)
            for msg in self._merge_consecutive_roles(messages)
        ]

    async def complete(
        self,
        messages: Iterable[ChatMessage],
        *,
        temperature: Optional[float] = None,
    ) -> ChatMessage:
        """Execute a chat completion call through the underlying MAF client."""

        temperature = (
            self._settings.extraction_temperature
            if temperature is None
            else temperature
        )
        response = await self._client.get_response(
            messages=self._payload(messages),
            temperature=temperature,
        )
        return ChatMessage(role="assistant", content=response.text or "")

    async def stream(
        self,
        messages: Iterable[ChatMessage],
        *,
        temperature: Optional[float] = None,
    ) -> AsyncIterator[str]:
        """Yield text fragments of a streamed completion in arrival order."""

        temperature = (
            self._settings.chat_temperature
            if temperature is None
            else temperature
        )
        updates = self._client.get_streaming_response(
            messages=self._payload(messages),
            temperature=temperature,
        )
        try:
            async for update in updates:
                text = getattr(update, "text", None)
                if text:
                    yield text
        finally:
            close = getattr(updates, "aclose", None)
            if close is not None:
                await close()
