from dataclasses import dataclass, field
from typing import Any

from telegram import Message, Poll, Update
from telegram.constants import UpdateType

from src.core.errors import TransportError

# ---------------------------------------------------------------------------- #
# Updates
# ---------------------------------------------------------------------------- #

UNKNOWN_ORIGINATOR = "unknown"


def normalize_identity(identity: str | int) -> str:
    """Usernames compare case-insensitively and with or without the leading '@'."""
    return str(identity).strip().lstrip("@").lower()


def _update_kind(update: Update) -> UpdateType | None:
    for kind in UpdateType:
        if getattr(update, kind.value, None) is not None:
            return kind
    return None


@dataclass(frozen=True)
class Event:
    """One update fetched from the Bot API. Read-only once observed."""

    sequence_id: int  # update_id
    kind: UpdateType | None
    originator: str
    payload: Any = field(repr=False, default=None)
    update: Update | None = field(repr=False, compare=False, default=None)

    @classmethod
    def from_update(cls, update: Update) -> "Event":
        kind = _update_kind(update)
        user = update.effective_user
        if user is None:
            originator = UNKNOWN_ORIGINATOR
        else:
            originator = normalize_identity(user.username or user.id)

        return cls(
            sequence_id=update.update_id,
            kind=kind,
            originator=originator,
            payload=getattr(update, kind.value) if kind else None,
            update=update,
        )


# ---------------------------------------------------------------------------- #
# Polls
# ---------------------------------------------------------------------------- #


@dataclass(frozen=True)
class PollOptionTally:
    text: str
    voter_count: int


@dataclass(frozen=True)
class PollSnapshot:
    """Point-in-time view of a poll: open/closed flag and vote tallies."""

    poll_id: str
    question: str
    options: tuple[PollOptionTally, ...]
    total_voter_count: int
    is_closed: bool
    is_anonymous: bool = True
    poll_type: str = Poll.REGULAR
    allows_multiple_answers: bool = False

    @classmethod
    def from_poll(cls, poll: Poll) -> "PollSnapshot":
        return cls(
            poll_id=poll.id,
            question=poll.question,
            options=tuple(PollOptionTally(o.text, o.voter_count) for o in poll.options),
            total_voter_count=poll.total_voter_count,
            is_closed=poll.is_closed,
            is_anonymous=poll.is_anonymous,
            poll_type=poll.type,
            allows_multiple_answers=poll.allows_multiple_answers,
        )

    @property
    def option_texts(self) -> list[str]:
        return [o.text for o in self.options]


@dataclass(frozen=True)
class PollMessage:
    """A sent poll together with the message reference needed to stop it."""

    chat_id: int
    message_id: int
    poll: PollSnapshot

    @classmethod
    def from_message(cls, message: Message) -> "PollMessage":
        if message.poll is None:
            raise TransportError(f"Message {message.message_id} does not carry a poll")
        return cls(
            chat_id=message.chat_id,
            message_id=message.message_id,
            poll=PollSnapshot.from_poll(message.poll),
        )
