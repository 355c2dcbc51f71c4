from collections.abc import Callable, Iterable
from dataclasses import dataclass

from telegram.constants import UpdateType

from src.core.errors import ConfigurationError
from src.core.models import Event, normalize_identity


class _AnyOriginator:
    """Sentinel: accept updates from anyone, including unknown actors."""

    def __repr__(self) -> str:
        return "ANY_ORIGINATOR"


ANY_ORIGINATOR = _AnyOriginator()

Originators = Iterable[str] | _AnyOriginator


def _parse_kinds(kinds: Iterable[str] | str) -> frozenset[UpdateType]:
    if isinstance(kinds, str):
        kinds = [kinds]
    parsed: set[UpdateType] = set()
    for kind in kinds:
        try:
            parsed.add(UpdateType(kind))
        except ValueError as e:
            raise ConfigurationError(f"Unknown update kind: {kind!r}") from e
    if not parsed:
        raise ConfigurationError("At least one update kind must be requested")
    return frozenset(parsed)


@dataclass(frozen=True, init=False)
class UpdateFilter:
    """
    Decides whether an update satisfies what a test step is waiting for.

    Args:
        kinds: Update kinds to accept. Must not be empty.
        originators: Usernames (or user ids) allowed to have caused the update,
            or ANY_ORIGINATOR to skip the originator check.
        predicate: Optional extra condition on the event.
    """

    kinds: frozenset[UpdateType]
    originators: frozenset[str] | _AnyOriginator
    predicate: Callable[[Event], bool] | None

    def __init__(
        self,
        kinds: Iterable[str] | str,
        originators: Originators = ANY_ORIGINATOR,
        predicate: Callable[[Event], bool] | None = None,
    ):
        if originators is not ANY_ORIGINATOR:
            if isinstance(originators, str):
                originators = [originators]
            originators = frozenset(normalize_identity(o) for o in originators)
            if not originators:
                raise ConfigurationError(
                    "No allowed originators given. Use ANY_ORIGINATOR to accept anyone"
                )
        object.__setattr__(self, "kinds", _parse_kinds(kinds))
        object.__setattr__(self, "originators", originators)
        object.__setattr__(self, "predicate", predicate)

    def matches(self, event: Event) -> bool:
        if event.kind not in self.kinds:
            return False
        if self.originators is not ANY_ORIGINATOR and event.originator not in self.originators:
            return False
        return self.predicate is None or bool(self.predicate(event))


def matches(
    event: Event, wanted_kinds: Iterable[str] | str, allowed_originators: Originators
) -> bool:
    """Pure form of UpdateFilter(wanted_kinds, allowed_originators).matches(event)."""
    return UpdateFilter(wanted_kinds, allowed_originators).matches(event)
