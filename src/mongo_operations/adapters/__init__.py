from .memory import (
    InMemoryChannel,
    InMemoryChannelSource,
    InMemoryReadBinding,
    InMemoryServer,
)

__all__ = [
    "InMemoryChannel",
    "InMemoryChannelSource",
    "InMemoryReadBinding",
    "InMemoryServer",
]
