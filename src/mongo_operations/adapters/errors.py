"""Translate pymongo exceptions into this package's taxonomy."""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING

from pymongo import errors as pymongo_errors

from ..exceptions import (
    NetworkError,
    NotWritablePrimaryError,
    ServerSelectionError,
    error_from_reply,
)

if TYPE_CHECKING:
    from collections.abc import Iterator


@contextlib.contextmanager
def translate_errors() -> Iterator[None]:
    """Re-raise driver errors as transient or command errors.

    Order matters: pymongo's selection and not-primary errors are
    subclasses of ``AutoReconnect``.
    """
    try:
        yield
    except pymongo_errors.ServerSelectionTimeoutError as e:
        raise ServerSelectionError(str(e)) from e
    except pymongo_errors.NotPrimaryError as e:
        details = e.details if isinstance(e.details, dict) else {}
        raise NotWritablePrimaryError(str(e), code=details.get("code")) from e
    except pymongo_errors.ConnectionFailure as e:
        raise NetworkError(str(e)) from e
    except pymongo_errors.OperationFailure as e:
        details = dict(e.details or {})
        details.setdefault("errmsg", str(e))
        details.setdefault("code", e.code)
        details["ok"] = 0
        raise error_from_reply(details) from e
