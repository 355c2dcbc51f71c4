import logging
from typing import Any

from src.core.api import BotApiClient
from src.core.errors import UnsetStateError
from src.core.receiver import UpdateReceiver
from src.integ.config import IntegConfig

logger = logging.getLogger(__name__)

_UNSET = object()


class StateSlot:
    """A FixtureState attribute that refuses to be read before it was written."""

    def __set_name__(self, owner, name):
        self.name = name
        self._attr = f"_slot_{name}"

    def __get__(self, instance, owner=None):
        if instance is None:
            return self
        value = instance.__dict__.get(self._attr, _UNSET)
        if value is _UNSET:
            raise UnsetStateError(self.name, type(instance).__name__)
        return value

    def __set__(self, instance, value):
        instance.__dict__[self._attr] = value

    def __delete__(self, instance):
        instance.__dict__.pop(self._attr, None)


class FixtureState:
    """
    State handed from one ordered step to the next within a test class.

    Steps of a class run one at a time in declared order, so a slot has a single
    writer and is only read after that writer finished. No locking is done and
    none is needed under that guarantee. Reading a slot whose writer failed or
    did not run raises UnsetStateError instead of yielding None.
    """

    @classmethod
    def slot_names(cls) -> list[str]:
        return [
            name
            for klass in reversed(cls.__mro__)
            for name, attr in vars(klass).items()
            if isinstance(attr, StateSlot)
        ]

    def is_set(self, name: str) -> bool:
        return f"_slot_{name}" in self.__dict__

    def clear(self) -> None:
        for name in self.slot_names():
            delattr(self, name)


class PollTestsState(FixtureState):
    # PollMessage sent by the first step
    poll_message = StateSlot()


class BotTestSession:
    """
    Everything a live test run shares: config, the API client and the receiver.

    Also sends the out-of-band notifications that tell the human testers what
    to do for the current step.
    """

    def __init__(
        self,
        config: IntegConfig,
        client: BotApiClient | None = None,
        receiver: UpdateReceiver | None = None,
    ):
        self.config = config
        self.client = client or BotApiClient(
            config.api_token,
            base_url=config.api_base_url,
            request_timeout=config.request_timeout,
        )
        self.receiver = receiver or UpdateReceiver(
            self.client,
            allowed_originators=config.allowed_usernames,
            poll_interval=config.poll_interval,
        )

    @property
    def supergroup_chat_id(self) -> int:
        return self.config.supergroup_chat_id

    async def start(self) -> None:
        """Check the token and drop updates left over from previous runs."""
        me = await self.client.get_me()
        logger.info(f"Running integration tests as @{me.username} ({me.id})")
        await self.receiver.discard_pending()

    def _testers_line(self) -> str:
        if not self.config.allowed_usernames:
            return "Any member of the chat may act."
        return "Allowed testers: " + ", ".join(f"@{u}" for u in self.config.allowed_usernames)

    async def send_test_case_notification(self, test_case: str, instructions: str = "") -> Any:
        text = f"🧪 Test case: {test_case}"
        if instructions:
            text += f"\n\n👉 {instructions}\n\n{self._testers_line()}"
        logger.info(f"Notifying testers: {test_case}")
        return await self.client.send_message(self.supergroup_chat_id, text)

    async def send_collection_notification(self, collection: str, finished: bool = False) -> Any:
        if finished:
            text = f"🏁 Finished test collection: {collection}"
        else:
            text = f"🚦 Starting test collection: {collection}"
        return await self.client.send_message(
            self.supergroup_chat_id, text, disable_notification=True
        )
