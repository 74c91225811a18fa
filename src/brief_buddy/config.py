"""Configuration helpers for the Brief Buddy assistant."""

from __future__ import annotations

import os
from dataclasses import dataclass
from importlib import import_module
from pathlib import Path
from typing import Optional


@dataclass(slots=True)
class ModelSettings:
    """Holds model-related configuration for the runtime."""

    provider: str
    model: str
    endpoint: Optional[str]
    api_key: str
    api_version: Optional[str]
    chat_temperature: float = 0.7
    extraction_temperature: float = 0.1


@dataclass(slots=True)
class DriveSettings:
    """Google Drive credentials and the root folder for projects."""

    client_id: Optional[str]
    client_secret: Optional[str]
    refresh_token: Optional[str]
    root_folder_id: Optional[str]

    @property
    def configured(self) -> bool:
        return all(
            (
                self.client_id,
                self.client_secret,
                self.refresh_token,
                self.root_folder_id,
            )
        )

    def require(self) -> "DriveSettings":
        """Fail with a helpful message when finalizing without Drive."""
        missing = [
            name
            for name, value in (
                ("GOOGLE_CLIENT_ID", self.client_id),
                ("GOOGLE_CLIENT_SECRET", self.client_secret),
                ("GOOGLE_REFRESH_TOKEN", self.refresh_token),
                ("DRIVE_FOLDER_ID", self.root_folder_id),
            )
            if not value
        ]
        if missing:
            raise RuntimeError(
                "Missing Google Drive configuration: " + ", ".join(missing)
            )
        return self


@dataclass(slots=True)
class TracingSettings:
    """Where model spans go and whether prompts and replies are attached."""

    endpoint: Optional[str] = None
    capture_sensitive: bool = False

    @property
    def enabled(self) -> bool:
        return bool(self.endpoint)


@dataclass(slots=True)
class AppSettings:
    """Top-level application settings loaded from environment variables."""

    model: ModelSettings
    drive: DriveSettings
    max_turns: int
    docx_template: Optional[Path]
    tracing: TracingSettings

    @classmethod
    def load(cls) -> "AppSettings":
        """Load settings from the environment or .env file."""
        _ensure_dotenv()
        provider = os.getenv("BRIEF_MODEL_PROVIDER", "openai")
        model = os.getenv("BRIEF_MODEL", "gpt-4o-mini")
        api_key = os.getenv("BRIEF_MODEL_API_KEY") or os.getenv(
            "OPENAI_API_KEY"
        )
        if not api_key:
            raise RuntimeError(
                "BRIEF_MODEL_API_KEY (or OPENAI_API_KEY) environment "
                "variable is required."
            )
        max_turns_raw = os.getenv("BRIEF_MAX_TURNS", "20")
        try:
            max_turns = int(max_turns_raw)
        except ValueError as exc:
            raise RuntimeError("BRIEF_MAX_TURNS must be an integer") from exc
        if max_turns < 1:
            raise RuntimeError("BRIEF_MAX_TURNS must be at least 1")
        template_raw = os.getenv("BRIEF_DOCX_TEMPLATE", "").strip()
        docx_template = Path(template_raw) if template_raw else None
        if docx_template is not None and not docx_template.is_file():
            raise RuntimeError(
                f"BRIEF_DOCX_TEMPLATE points to a missing file: {docx_template}"
            )
        capture_raw = os.getenv("BRIEF_TRACING_CAPTURE_SENSITIVE", "false")
        tracing = TracingSettings(
            endpoint=os.getenv("BRIEF_OTLP_ENDPOINT", "").strip() or None,
            capture_sensitive=capture_raw.strip().lower() in {"1", "true", "yes", "on"},
        )
        return cls(
            model=ModelSettings(
                provider=provider,
                model=model,
                endpoint=os.getenv("BRIEF_MODEL_ENDPOINT"),
                api_key=api_key,
                api_version=os.getenv("BRIEF_MODEL_API_VERSION"),
            ),
            drive=DriveSettings(
                client_id=os.getenv("GOOGLE_CLIENT_ID"),
                client_secret=os.getenv("GOOGLE_CLIENT_SECRET"),
                refresh_token=os.getenv("GOOGLE_REFRESH_TOKEN"),
                root_folder_id=os.getenv("DRIVE_FOLDER_ID"),
            ),
            max_turns=max_turns,
            docx_template=docx_template,
            tracing=tracing,
        )


def _ensure_dotenv() -> None:
    """Load dotenv variables and provide a helpful error if missing."""

    try:
        dotenv_module = import_module("dotenv")
    except ModuleNotFoundError as exc:  # pragma: no cover - optional dep
        raise RuntimeError(
            "python-dotenv is required. Install with `pip install "
            "python-dotenv`."
        ) from exc

    load_dotenv = getattr(dotenv_module, "load_dotenv")
    load_dotenv()
