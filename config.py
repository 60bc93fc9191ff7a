"""Configuration.

Settings are read once at process start: .env first (python-dotenv), then
the environment. Nothing reads os.environ after load_settings() returns;
the resulting Settings object is passed to whatever needs it.

Live mode:    set FLASHDUTY_APP_KEY in your .env and build_client() returns a FlashdutyClient.
Fixture mode: leave FLASHDUTY_APP_KEY unset and build_client() serves fixtures/flashduty.json.
"""

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from integrations.fixture import FixtureClient
from integrations.flashduty import DEFAULT_BASE_URL, DEFAULT_TIMEOUT_SECONDS, FlashdutyClient
from utils.format import OutputFormat

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "flashduty-enrichment/0.1"
DEFAULT_ALLOWED_ORIGINS = "http://localhost:3000"


def _env(name: str, default: str | None = None) -> str | None:
    v = os.getenv(name)
    return v if v is not None and v != "" else default


@dataclass(frozen=True)
class Settings:
    app_key: str | None
    base_url: str
    timeout_seconds: int
    user_agent: str
    log_level: str
    output_format: OutputFormat
    allowed_origins: tuple[str, ...]

    @property
    def live(self) -> bool:
        return bool(self.app_key)


def load_settings() -> Settings:
    """Load .env, then read settings from the environment with local defaults."""
    load_dotenv()

    origins = tuple(
        o.strip() for o in (_env("ALLOWED_ORIGINS", DEFAULT_ALLOWED_ORIGINS) or "").split(",") if o.strip()
    )

    return Settings(
        app_key=_env("FLASHDUTY_APP_KEY"),
        base_url=_env("FLASHDUTY_BASE_URL", DEFAULT_BASE_URL) or DEFAULT_BASE_URL,
        timeout_seconds=int(_env("FLASHDUTY_TIMEOUT_SECONDS", str(DEFAULT_TIMEOUT_SECONDS)) or DEFAULT_TIMEOUT_SECONDS),
        user_agent=_env("FLASHDUTY_USER_AGENT", DEFAULT_USER_AGENT) or DEFAULT_USER_AGENT,
        log_level=(_env("FLASHDUTY_LOG_LEVEL", "INFO") or "INFO").upper(),
        output_format=OutputFormat.parse(_env("FLASHDUTY_OUTPUT_FORMAT")),
        allowed_origins=origins,
    )


def build_client(settings: Settings) -> FlashdutyClient | FixtureClient:
    """Return the live client when an app key is configured, fixtures otherwise."""
    if not settings.live:
        logger.info("FLASHDUTY_APP_KEY not set, using fixture data.")
        return FixtureClient()

    logger.info("Using Flashduty API at %s.", settings.base_url)
    return FlashdutyClient(
        app_key=settings.app_key,
        base_url=settings.base_url,
        timeout_seconds=settings.timeout_seconds,
        user_agent=settings.user_agent,
    )
