"""Protocols for the collaborators the pipeline talks to.

The update feed, the action executor and the identity provider live outside
this package (chain client, wallet connection); the pipeline only depends on
the shapes below.
"""

from collections.abc import Callable, Mapping
from typing import Any, Protocol, runtime_checkable

from tileflip.schemas.types import FlipAction

UpdateCallback = Callable[[str, Mapping[str, Any]], None]


@runtime_checkable
class Subscription(Protocol):
    """Handle of an active feed subscription."""

    def cancel(self) -> None:
        """Stop delivering events to the subscriber."""
        ...


@runtime_checkable
class UpdateFeed(Protocol):
    """Source of tile state changes.

    Filtering by key pattern or model is the feed's job; every delivered
    payload is a tile model.
    """

    async def subscribe(self, callback: UpdateCallback) -> Subscription:
        """Deliver ``(key, payload)`` for every tile change until cancelled.

        Args:
            callback: Called synchronously for each event

        Returns:
            Subscription handle
        """
        ...


@runtime_checkable
class ActionExecutor(Protocol):
    """Submits a batch of flip actions as one atomic request."""

    async def execute(self, actions: list[FlipAction]) -> str:
        """Submit actions.

        Args:
            actions: Ordered flip actions of one chunk

        Returns:
            Transaction reference

        Raises:
            Exception: Any failure; the chunk is recorded as failed
        """
        ...


@runtime_checkable
class IdentityProvider(Protocol):
    """Exposes the local actor's identity."""

    @property
    def identity(self) -> str | None:
        """Identity of the local account, or None when not connected."""
        ...
