import logging
from collections.abc import Sequence
from typing import Any

import httpx
from telegram import Message, Poll, Update, User

from src.core.errors import ApiRequestError, TransportError
from src.core.models import Event, PollMessage, PollSnapshot

logger = logging.getLogger(__name__)


class BotApiClient:
    """
    Minimal Bot API client used by the integration tests.

    Requests go straight through httpx so that error descriptions reach the
    tests exactly as the server wrote them. Replies are parsed into
    python-telegram-bot objects.
    """

    BASE_URL = "https://api.telegram.org"
    UPDATES_LIMIT = 100

    def __init__(
        self,
        token: str,
        base_url: str | None = None,
        request_timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._token = token
        self._base_url = (base_url or self.BASE_URL).rstrip("/")
        self._request_timeout = request_timeout
        self._transport = transport

    def _method_url(self, method: str) -> str:
        return f"{self._base_url}/bot{self._token}/{method}"

    async def _call(self, method: str, payload: dict[str, Any] | None = None) -> Any:
        """
        Call a Bot API method and return its `result`.

        Raises:
            TransportError: network failure or a reply that isn't Bot API JSON
            ApiRequestError: the server answered with ok=false
        """
        async with httpx.AsyncClient(
            transport=self._transport, timeout=self._request_timeout
        ) as client:
            try:
                response = await client.post(self._method_url(method), json=payload or {})
            except httpx.HTTPError as e:
                # Don't leak the token through the request URL
                logger.error(f"Error calling {method}: {type(e).__name__}")
                raise TransportError(f"Could not reach the Bot API calling {method}: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            logger.error(f"Non-JSON reply to {method} (status {response.status_code})")
            raise TransportError(
                f"Unexpected reply to {method} with status {response.status_code}"
            ) from e

        if not isinstance(body, dict) or "ok" not in body:
            raise TransportError(f"Unexpected reply to {method}: {body!r}")

        if not body["ok"]:
            description = body.get("description") or f"HTTP {response.status_code}"
            parameters = body.get("parameters") or {}
            logger.warning(f"{method} rejected: {description}")
            raise ApiRequestError(
                description,
                error_code=body.get("error_code", response.status_code),
                retry_after=parameters.get("retry_after"),
                migrate_to_chat_id=parameters.get("migrate_to_chat_id"),
            )

        return body.get("result")

    async def get_me(self) -> User:
        result = await self._call("getMe")
        return User.de_json(result, None)

    async def get_updates(
        self,
        offset: int | None = None,
        limit: int = UPDATES_LIMIT,
        allowed_updates: Sequence[str] | None = None,
    ) -> list[Update]:
        """Short-poll for updates. Passing an offset confirms everything before it."""
        payload: dict[str, Any] = {"limit": limit, "timeout": 0}
        if offset is not None:
            payload["offset"] = offset
        if allowed_updates is not None:
            payload["allowed_updates"] = list(allowed_updates)

        result = await self._call("getUpdates", payload)
        return [Update.de_json(item, None) for item in result or []]

    async def fetch_since(self, cursor: int) -> list[Event]:
        """
        Updates with an id strictly greater than cursor, oldest first.

        A rejected getUpdates (bad token, webhook set, another poller) means the
        source is unusable, so it surfaces as TransportError like a network
        failure.
        """
        try:
            updates = await self.get_updates(offset=cursor + 1)
        except ApiRequestError as e:
            raise TransportError(f"getUpdates rejected: {e.description}") from e

        events = [Event.from_update(update) for update in updates]
        events.sort(key=lambda e: e.sequence_id)
        return events

    async def send_message(
        self, chat_id: int | str, text: str, disable_notification: bool = False
    ) -> Message:
        result = await self._call(
            "sendMessage",
            {
                "chat_id": chat_id,
                "text": text,
                "disable_notification": disable_notification,
            },
        )
        return Message.de_json(result, None)

    async def send_poll(
        self,
        chat_id: int | str,
        question: str,
        options: Sequence[str],
        is_anonymous: bool = True,
        allows_multiple_answers: bool = False,
    ) -> PollMessage:
        """
        Send a native poll.

        The option count is deliberately not checked here: the server decides,
        and its error text is what the error-path tests assert on.
        """
        result = await self._call(
            "sendPoll",
            {
                "chat_id": chat_id,
                "question": question,
                "options": [{"text": option} for option in options],
                "is_anonymous": is_anonymous,
                "allows_multiple_answers": allows_multiple_answers,
            },
        )
        poll_message = PollMessage.from_message(Message.de_json(result, None))
        logger.info(
            f"Sent poll {poll_message.poll.poll_id} as message {poll_message.message_id} "
            f"to chat {poll_message.chat_id}"
        )
        return poll_message

    async def stop_poll(self, chat_id: int | str, message_id: int) -> PollSnapshot:
        result = await self._call("stopPoll", {"chat_id": chat_id, "message_id": message_id})
        snapshot = PollSnapshot.from_poll(Poll.de_json(result, None))
        logger.info(f"Stopped poll {snapshot.poll_id} (message {message_id})")
        return snapshot
