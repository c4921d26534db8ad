# In-memory stand-ins for the chain client and wallet

from .memory import (
    ExecutorRejected,
    InMemorySubscription,
    InMemoryUpdateFeed,
    RecordingExecutor,
    StaticIdentity,
)

__all__ = [
    "ExecutorRejected",
    "InMemorySubscription",
    "InMemoryUpdateFeed",
    "RecordingExecutor",
    "StaticIdentity",
]
