"""In-memory feed, executor and identity for tests and the demo command.

These adapters stand in for the chain client and the wallet connection.
The feed delivers published updates synchronously to every subscriber,
and the executor records each chunk it receives and can simulate latency
and failures.
"""

import asyncio
import hashlib
import random
from collections.abc import Callable, Mapping
from typing import Any

from tileflip.core.decoder import encode_packed_state
from tileflip.core.interfaces import UpdateCallback
from tileflip.config.config import PipelineConfig
from tileflip.schemas.types import UNOWNED, FlipAction, FlipCall, Powerup
from tileflip.utils.telemetry import get_logger


class ExecutorRejected(Exception):
    """Raised by RecordingExecutor for a simulated failed submission."""


class InMemorySubscription:
    """Subscription handle returned by InMemoryUpdateFeed."""

    def __init__(self, feed: "InMemoryUpdateFeed", callback: UpdateCallback):
        self._feed = feed
        self._callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        self._feed._remove(self)


class InMemoryUpdateFeed:
    """Update feed driven by explicit ``publish`` calls."""

    def __init__(self) -> None:
        self._subscriptions: list[InMemorySubscription] = []
        self._logger = get_logger("tileflip.adapters.memory.feed")

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def subscribe(self, callback: UpdateCallback) -> InMemorySubscription:
        subscription = InMemorySubscription(self, callback)
        self._subscriptions.append(subscription)
        self._logger.debug("Subscriber added", subscribers=len(self._subscriptions))
        return subscription

    def _remove(self, subscription: InMemorySubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
            self._logger.debug(
                "Subscriber removed", subscribers=len(self._subscriptions)
            )

    def publish(self, key: str, payload: Mapping[str, Any]) -> int:
        """Deliver one update to every active subscriber.

        Args:
            key: Feed key of the tile
            payload: Tile model fields

        Returns:
            Number of subscribers the update was delivered to
        """
        subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            subscription._callback(key, payload)
        return len(subscriptions)

    def publish_tile(
        self,
        x: int,
        y: int,
        owner: str = UNOWNED,
        powerup: Powerup = Powerup.NONE,
        powerup_value: int = 0,
        team: int = 0,
    ) -> int:
        """Publish a tile with explicit coordinates and packed state."""
        payload = {
            "x": x,
            "y": y,
            "flipped": encode_packed_state(owner, powerup, powerup_value, team),
        }
        return self.publish(f"tile-{x}-{y}", payload)


class RecordingExecutor:
    """Executor that records every chunk and returns a fake transaction hash.

    Each chunk is rendered into the account calls a chain client would
    submit, and the transaction hash is derived from that calldata.

    Args:
        contract_address: Address of the actions contract
        entrypoint: Contract entrypoint invoked per action
        latency_seconds: Simulated submission latency
        failure_rate: Probability that a submission is rejected
        fail_when: Predicate on the chunk's actions forcing a rejection
        rng: Random source for failures
        sleep: Awaitable used for the simulated latency
    """

    def __init__(
        self,
        contract_address: str = UNOWNED,
        entrypoint: str = "flip",
        latency_seconds: float = 0.0,
        failure_rate: float = 0.0,
        fail_when: Callable[[list[FlipAction]], bool] | None = None,
        rng: random.Random | None = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        if latency_seconds < 0:
            raise ValueError("latency_seconds must not be negative")
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError("failure_rate must be between 0.0 and 1.0")

        self.contract_address = contract_address
        self.entrypoint = entrypoint
        self.latency_seconds = latency_seconds
        self.failure_rate = failure_rate
        self.fail_when = fail_when
        self._rng = rng or random.Random()
        self._sleep = sleep
        self.calls: list[list[FlipAction]] = []
        self.submitted: list[list[FlipCall]] = []
        self.tx_refs: list[str] = []
        self._logger = get_logger("tileflip.adapters.memory.executor")

    @classmethod
    def from_config(cls, config: PipelineConfig, **kwargs: Any) -> "RecordingExecutor":
        """Create an executor targeting the configured contract and entrypoint."""
        return cls(config.contract_address, config.entrypoint, **kwargs)

    @property
    def call_count(self) -> int:
        return len(self.calls)

    @property
    def actions(self) -> list[FlipAction]:
        """All actions received, in submission order."""
        return [action for call in self.calls for action in call]

    async def execute(self, actions: list[FlipAction]) -> str:
        batch = list(actions)
        calls = [a.to_call(self.contract_address, self.entrypoint) for a in batch]
        self.calls.append(batch)
        self.submitted.append(calls)

        if self.latency_seconds > 0:
            await self._sleep(self.latency_seconds)

        if (self.fail_when is not None and self.fail_when(batch)) or (
            self.failure_rate > 0 and self._rng.random() < self.failure_rate
        ):
            self._logger.info("Simulated rejection", size=len(batch))
            raise ExecutorRejected(f"Rejected chunk of {len(batch)} actions")

        digest = hashlib.sha256(
            f"{len(self.calls)}:{calls!r}".encode()
        ).hexdigest()
        tx_ref = "0x" + digest
        self.tx_refs.append(tx_ref)
        return tx_ref


class StaticIdentity:
    """Identity provider with a fixed, replaceable identity."""

    def __init__(self, identity: str | None = None):
        self._identity = identity

    @property
    def identity(self) -> str | None:
        return self._identity

    def connect(self, identity: str) -> None:
        self._identity = identity

    def disconnect(self) -> None:
        self._identity = None
