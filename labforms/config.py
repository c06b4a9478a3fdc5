"""Application settings with environment overrides."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import os

DEFAULT_API_URL = "http://localhost:5000/api"
DEFAULT_FONT_SIZE = 12.0


@dataclass(frozen=True, slots=True)
class ZoomRange:
    minimum: float
    maximum: float

    def clamp(self, scale: float) -> float:
        return max(self.minimum, min(scale, self.maximum))


EDIT_ZOOM = ZoomRange(0.5, 2.0)
FILL_ZOOM = ZoomRange(0.4, 2.5)
FIT_ZOOM = ZoomRange(0.5, 1.5)


@dataclass(frozen=True, slots=True)
class Settings:
    api_url: str = DEFAULT_API_URL
    http_timeout: float = 15.0
    log_level: str = "INFO"
    edit_zoom: ZoomRange = field(default=EDIT_ZOOM)
    fill_zoom: ZoomRange = field(default=FILL_ZOOM)
    zoom_step: float = 0.1
    zoom_mask_seconds: float = 0.5
    nudge_step: float = 1.0
    nudge_step_large: float = 10.0
    duplicate_offset: float = 12.0
    session_cookie: str | None = None
    email: str | None = None
    password: str | None = None

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        timeout = env.get("LABFORMS_HTTP_TIMEOUT")
        return cls(
            api_url=env.get("LABFORMS_API_URL", DEFAULT_API_URL).rstrip("/"),
            http_timeout=float(timeout) if timeout else 15.0,
            log_level=env.get("LABFORMS_LOG_LEVEL", "INFO").upper(),
            session_cookie=env.get("LABFORMS_SESSION_COOKIE") or None,
            email=env.get("LABFORMS_EMAIL") or None,
            password=env.get("LABFORMS_PASSWORD") or None,
        )


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
