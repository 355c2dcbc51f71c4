import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

from dotenv import load_dotenv

from src.core.errors import ConfigurationError
from src.core.models import normalize_identity

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://api.telegram.org"


def _require(environ: Mapping[str, str], name: str) -> str:
    value = (environ.get(name) or "").strip()
    if not value:
        raise ConfigurationError(f"{name} not set!")
    return value


def _number(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {raw!r}")
    return value


@dataclass(frozen=True)
class IntegConfig:
    """Settings for a live run against the Bot API."""

    api_token: str
    supergroup_chat_id: int
    allowed_usernames: tuple[str, ...] = ()
    update_timeout: float = 120.0
    poll_interval: float = 1.0
    api_base_url: str = DEFAULT_API_BASE_URL
    request_timeout: float = 30.0

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "IntegConfig":
        """
        Build the config from environment variables.

        A `.env` file in the working directory is loaded first when reading the
        real environment.

        Raises:
            ConfigurationError: a required variable is missing or malformed
        """
        if environ is None:
            load_dotenv()
            environ = os.environ

        token = _require(environ, "TELEGRAM_BOT_TOKEN")

        raw_chat_id = _require(environ, "TEST_SUPERGROUP_CHAT_ID")
        try:
            chat_id = int(raw_chat_id)
        except ValueError as e:
            raise ConfigurationError(
                f"TEST_SUPERGROUP_CHAT_ID must be an integer, got {raw_chat_id!r}"
            ) from e

        usernames = tuple(
            normalize_identity(name)
            for name in (environ.get("TEST_ALLOWED_USERNAMES") or "").split(",")
            if name.strip()
        )
        if not usernames:
            logger.warning(
                "TEST_ALLOWED_USERNAMES is empty. Steps waiting for a specific tester will fail."
            )

        return cls(
            api_token=token,
            supergroup_chat_id=chat_id,
            allowed_usernames=usernames,
            update_timeout=_number(environ, "TEST_UPDATE_TIMEOUT", 120.0),
            poll_interval=_number(environ, "TEST_POLL_INTERVAL", 1.0),
            api_base_url=(environ.get("TELEGRAM_API_BASE_URL") or DEFAULT_API_BASE_URL).strip(),
            request_timeout=_number(environ, "TELEGRAM_REQUEST_TIMEOUT", 30.0),
        )
