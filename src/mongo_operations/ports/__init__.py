from .binding import (
    AsyncChannel,
    AsyncChannelSource,
    AsyncReadBinding,
    Channel,
    ChannelSource,
    ReadBinding,
    ServerDescription,
)
from .cursor import AsyncBatchCursor, BatchCursor
from .serializer import DocumentSerializer

__all__ = [
    "AsyncBatchCursor",
    "AsyncChannel",
    "AsyncChannelSource",
    "AsyncReadBinding",
    "BatchCursor",
    "Channel",
    "ChannelSource",
    "DocumentSerializer",
    "ReadBinding",
    "ServerDescription",
]
