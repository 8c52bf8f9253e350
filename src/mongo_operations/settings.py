"""Encoder and retry settings threaded through every operation."""

from __future__ import annotations

from typing import Any

from bson.binary import UuidRepresentation
from bson.codec_options import CodecOptions
from pydantic import BaseModel, ConfigDict, Field


class MessageEncoderSettings(BaseModel):
    """Protocol-level encoding choices.

    Operations never interpret these; they hand them to the channel, which
    turns them into ``CodecOptions`` when decoding replies.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    document_class: type[Any] = dict
    tz_aware: bool = False
    uuid_representation: int = UuidRepresentation.STANDARD
    unicode_decode_error_handler: str = "strict"

    def codec_options(self) -> CodecOptions[Any]:
        return CodecOptions(
            document_class=self.document_class,
            tz_aware=self.tz_aware,
            uuid_representation=self.uuid_representation,
            unicode_decode_error_handler=self.unicode_decode_error_handler,
        )


class RetrySettings(BaseModel):
    """Backoff applied between a failed attempt and its single retry."""

    model_config = ConfigDict(frozen=True)

    backoff_seconds: float = Field(default=0.0, ge=0.0)


DEFAULT_RETRY_SETTINGS = RetrySettings()
