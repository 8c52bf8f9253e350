"""Tests for document helpers and encoder settings."""

from __future__ import annotations

import re
from collections import OrderedDict

import pytest
from bson.binary import UuidRepresentation
from bson.regex import Regex
from pydantic import ValidationError

from mongo_operations import (
    MessageEncoderSettings,
    NotSupportedError,
    ProtocolViolationError,
    RetrySettings,
)
from mongo_operations.documents import (
    get_string_field,
    require_plain_string,
    shallow_clone,
)


def test_shallow_clone_copies_top_level_only() -> None:
    nested = {"capped": True}
    original = {"name": "a", "options": nested}

    clone = shallow_clone(original)
    clone["name"] = "b"

    assert original["name"] == "a"
    assert clone["options"] is nested


def test_shallow_clone_keeps_field_order() -> None:
    original = OrderedDict([("z", 1), ("a", 2), ("m", 3)])

    assert list(shallow_clone(original)) == ["z", "a", "m"]


def test_require_plain_string_returns_value() -> None:
    assert require_plain_string({"name": "users"}, "name", "nope") == "users"


@pytest.mark.parametrize("value", [Regex("^a"), re.compile("^a"), {"$eq": "a"}, 1])
def test_require_plain_string_rejects_other_types(value: object) -> None:
    with pytest.raises(NotSupportedError, match="nope"):
        require_plain_string({"name": value}, "name", "nope")


def test_get_string_field_missing() -> None:
    with pytest.raises(ProtocolViolationError, match="no 'name' field"):
        get_string_field({}, "name")


def test_get_string_field_wrong_type() -> None:
    with pytest.raises(ProtocolViolationError, match="must be a string"):
        get_string_field({"name": 3}, "name")


def test_encoder_settings_build_codec_options() -> None:
    settings = MessageEncoderSettings(tz_aware=True)

    options = settings.codec_options()

    assert options.tz_aware is True
    assert options.uuid_representation == UuidRepresentation.STANDARD
    assert options.document_class is dict


def test_encoder_settings_are_frozen() -> None:
    settings = MessageEncoderSettings()
    with pytest.raises(ValidationError):
        settings.tz_aware = True  # type: ignore[misc]


def test_retry_settings_reject_negative_backoff() -> None:
    assert RetrySettings().backoff_seconds == 0.0
    with pytest.raises(ValidationError):
        RetrySettings(backoff_seconds=-1)
