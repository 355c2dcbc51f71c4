class ErrorKind:
    """Tags carried by every harness error so callers can branch on kind."""

    CONFIGURATION = "configuration"
    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    UNSET_STATE = "unset_state"
    API_REQUEST = "api_request"


class HarnessError(Exception):
    kind: str = ""


class ConfigurationError(HarnessError):
    """Programmer or environment error. Never retried."""

    kind = ErrorKind.CONFIGURATION


class TransportError(HarnessError):
    """The Bot API could not be reached or refused to hand out updates."""

    kind = ErrorKind.TRANSPORT


class UpdateTimeoutError(HarnessError):
    """No matching update arrived before the deadline."""

    kind = ErrorKind.TIMEOUT

    def __init__(self, elapsed: float, cursor: int, kinds: frozenset[str] = frozenset()):
        self.elapsed = elapsed
        self.cursor = cursor
        self.kinds = kinds
        wanted = ", ".join(sorted(kinds)) or "?"
        super().__init__(
            f"No update of kind [{wanted}] received after {elapsed:.1f}s (cursor={cursor})"
        )


class UnsetStateError(HarnessError):
    """A step read shared state that no earlier step has written."""

    kind = ErrorKind.UNSET_STATE

    def __init__(self, name: str, owner: str = ""):
        self.name = name
        self.owner = owner
        where = f"{owner}.{name}" if owner else name
        super().__init__(f"'{where}' is not set. Did an earlier step fail or not run?")


class ApiRequestError(HarnessError):
    """
    The Bot API rejected a request.

    The message is the server's description, unchanged, so tests can assert on
    the exact text (e.g. "Bad Request: poll must have at least 2 option").
    """

    kind = ErrorKind.API_REQUEST

    def __init__(
        self,
        description: str,
        error_code: int | None = None,
        retry_after: int | None = None,
        migrate_to_chat_id: int | None = None,
    ):
        self.description = description
        self.error_code = error_code
        self.retry_after = retry_after
        self.migrate_to_chat_id = migrate_to_chat_id
        super().__init__(description)
