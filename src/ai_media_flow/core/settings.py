"""
Engine Settings - Tunables for scheduling, dispatch and credentials.

Settings are read from ``~/.config/ai_media_flow/settings.json`` when
present. API keys are never stored here.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = Path.home() / ".config" / "ai_media_flow" / "settings.json"


@dataclass
class EngineSettings:
    """
    Engine-level settings.

    ``concurrency_limit`` bounds the worker pool of a run; the default is
    sized for the rate limits of the busiest image backend.
    """
    # Scheduling
    concurrency_limit: int = 4

    # Dispatch ceilings (seconds)
    dispatch_timeout: float = 60.0
    video_timeout: float = 600.0

    # Retry policy
    max_attempts: int = 3
    backoff_base: float = 1.0
    backoff_max: float = 30.0

    # Credential cache time-to-live (seconds)
    credential_ttl: float = 300.0

    # Provider id -> base URL override
    provider_base_urls: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert settings to dictionary for serialization."""
        return {
            "concurrency_limit": self.concurrency_limit,
            "dispatch_timeout": self.dispatch_timeout,
            "video_timeout": self.video_timeout,
            "max_attempts": self.max_attempts,
            "backoff_base": self.backoff_base,
            "backoff_max": self.backoff_max,
            "credential_ttl": self.credential_ttl,
            "provider_base_urls": dict(self.provider_base_urls),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EngineSettings:
        """Create settings from dictionary."""
        return cls(
            concurrency_limit=max(1, int(data.get("concurrency_limit", 4))),
            dispatch_timeout=float(data.get("dispatch_timeout", 60.0)),
            video_timeout=float(data.get("video_timeout", 600.0)),
            max_attempts=max(1, int(data.get("max_attempts", 3))),
            backoff_base=float(data.get("backoff_base", 1.0)),
            backoff_max=float(data.get("backoff_max", 30.0)),
            credential_ttl=float(data.get("credential_ttl", 300.0)),
            provider_base_urls=dict(data.get("provider_base_urls", {})),
        )


def load_settings(path: Path | None = None) -> EngineSettings:
    """
    Load settings from file.

    A missing file yields defaults; an unreadable one is logged and also
    yields defaults.
    """
    path = path or DEFAULT_SETTINGS_PATH
    if not path.exists():
        return EngineSettings()

    try:
        with open(path) as f:
            data = json.load(f)
        return EngineSettings.from_dict(data)
    except (OSError, ValueError, TypeError) as e:
        logger.warning("Failed to load engine settings from %s: %s", path, e)
        return EngineSettings()


def save_settings(settings: EngineSettings, path: Path | None = None) -> None:
    """Save settings to file."""
    path = path or DEFAULT_SETTINGS_PATH
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        json.dump(settings.to_dict(), f, indent=2)
