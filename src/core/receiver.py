import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import Protocol

from telegram.constants import UpdateType

from src.core.errors import ConfigurationError, UpdateTimeoutError
from src.core.filters import ANY_ORIGINATOR, Originators, UpdateFilter
from src.core.models import Event

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 1.0  # seconds between fetches when nothing matched
DEFAULT_TIMEOUT = 120.0  # humans are slow


class EventSource(Protocol):
    async def fetch_since(self, cursor: int) -> Sequence[Event]:
        """Return events with sequence_id > cursor in ascending order. May be empty."""
        ...


class UpdateReceiver:
    """
    Waits for the next update relevant to a test step.

    The receiver owns a cursor: the highest update id consumed so far. Every
    fetched update moves the cursor, matched or not, so an update is handed out
    at most once per receiver and unrelated chatter is never looked at twice.
    When a batch holds several matches only the earliest is returned and the
    others are dropped with the rest of the batch. This includes non-matching
    updates that came after the match: a batch [5 poll, 7 message] answered
    with 5 leaves the cursor at 7, so a later wait for a message never sees 7.
    Wait for updates in the order the test expects them to arrive.

    Waiting is a plain fetch-then-sleep loop on the calling task. The last sleep
    before the deadline is shortened so the wait never overshoots by more than
    one poll interval.
    """

    def __init__(
        self,
        source: EventSource,
        allowed_originators: Iterable[str] = (),
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if poll_interval <= 0:
            raise ConfigurationError(f"poll_interval must be positive, got {poll_interval}")
        self._source = source
        self._allowed_originators = tuple(allowed_originators)
        self._poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep
        self._cursor = 0

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def poll_interval(self) -> float:
        return self._poll_interval

    async def await_next(
        self,
        kinds: Iterable[str] | str,
        originators: Originators | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        predicate: Callable[[Event], bool] | None = None,
    ) -> Event:
        """
        Block until the next update matching the filter arrives.

        Args:
            kinds: Update kinds to accept.
            originators: Allowed actors. None means the receiver's configured
                testers; ANY_ORIGINATOR means anyone.
            timeout: Overall deadline in seconds.
            predicate: Optional extra condition.

        Returns:
            The earliest matching event. Later events of the same batch are
            consumed too and will not be returned by a later call.

        Raises:
            ConfigurationError: bad filter or timeout, before any fetch.
            TransportError: the update source failed. Not retried here.
            UpdateTimeoutError: nothing matched before the deadline.
        """
        if timeout <= 0:
            raise ConfigurationError(f"timeout must be positive, got {timeout}")
        if originators is None:
            originators = self._allowed_originators
        update_filter = UpdateFilter(kinds, originators, predicate)

        started = self._clock()
        deadline = started + timeout

        while True:
            batch = await self._source.fetch_since(self._cursor)
            match = self._consume(batch, update_filter)
            if match is not None:
                logger.info(
                    f"Received update {match.sequence_id} ({match.kind}) from {match.originator}"
                )
                return match

            now = self._clock()
            remaining = deadline - now
            if remaining <= 0:
                elapsed = now - started
                logger.warning(
                    f"Timed out after {elapsed:.1f}s waiting for "
                    f"{sorted(update_filter.kinds)} (cursor={self._cursor})"
                )
                raise UpdateTimeoutError(elapsed, self._cursor, frozenset(update_filter.kinds))

            await self._sleep(min(self._poll_interval, remaining))

    def _consume(self, batch: Sequence[Event], update_filter: UpdateFilter) -> Event | None:
        # Anything at or below the cursor was handed out or skipped already
        fresh = sorted(
            (e for e in batch if e.sequence_id > self._cursor), key=lambda e: e.sequence_id
        )
        if not fresh:
            return None

        # The whole batch counts as consumed, only its earliest match is returned
        self._cursor = fresh[-1].sequence_id
        for event in fresh:
            if update_filter.matches(event):
                return event
            logger.debug(
                f"Skipping update {event.sequence_id} ({event.kind}) from {event.originator}"
            )
        return None

    async def discard_pending(self) -> int:
        """
        Consume every update already buffered by the source.

        Called before a run so updates left over from earlier runs can't be
        mistaken for a reaction to this run's actions.
        """
        discarded = 0
        while True:
            batch = await self._source.fetch_since(self._cursor)
            fresh = [e for e in batch if e.sequence_id > self._cursor]
            if not fresh:
                break
            self._cursor = max(e.sequence_id for e in fresh)
            discarded += len(fresh)

        if discarded:
            logger.info(f"Discarded {discarded} pending updates (cursor={self._cursor})")
        return discarded

    async def await_poll_update(self, poll_id: str, timeout: float = DEFAULT_TIMEOUT) -> Event:
        """Wait for a state change of one poll. Poll updates carry no actor."""
        return await self.await_next(
            UpdateType.POLL,
            ANY_ORIGINATOR,
            timeout,
            predicate=lambda e: e.payload.id == poll_id,
        )

    async def await_poll_answer(self, poll_id: str, timeout: float = DEFAULT_TIMEOUT) -> Event:
        """Wait for one of the allowed testers to answer a non-anonymous poll."""
        return await self.await_next(
            UpdateType.POLL_ANSWER,
            timeout=timeout,
            predicate=lambda e: e.payload.poll_id == poll_id,
        )

    async def await_callback_query(
        self, data: str | None = None, timeout: float = DEFAULT_TIMEOUT
    ) -> Event:
        """Wait for one of the allowed testers to press an inline button."""
        predicate = None
        if data is not None:
            predicate = lambda e: e.payload.data == data  # noqa: E731
        return await self.await_next(
            UpdateType.CALLBACK_QUERY, timeout=timeout, predicate=predicate
        )
