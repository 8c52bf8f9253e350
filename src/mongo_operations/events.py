"""Operation scopes — an operation id ContextVar plus an OpenTelemetry span."""

from __future__ import annotations

import contextlib
import itertools
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any

from opentelemetry import trace

if TYPE_CHECKING:
    from collections.abc import Iterator

_operation_id: ContextVar[int | None] = ContextVar("operation_id", default=None)
_ids = itertools.count(1)

_tracer = trace.get_tracer("mongo-operations", "0.1.0")


def current_operation_id() -> int | None:
    """Return the id of the innermost open operation, if any."""
    return _operation_id.get()


@contextlib.contextmanager
def operation_scope(name: str, **attributes: Any) -> Iterator[int]:
    """Open a protocol-level operation boundary.

    Nested scopes reuse the outer operation id so that every command sent
    on behalf of one logical operation is reported under the same id.
    """
    outer = _operation_id.get()
    operation_id = outer if outer is not None else next(_ids)
    token = _operation_id.set(operation_id)
    try:
        with _tracer.start_as_current_span(
            f"mongo.{name}", record_exception=False
        ) as span:
            span.set_attribute("db.system", "mongodb")
            span.set_attribute("db.operation", name)
            span.set_attribute("db.operation_id", operation_id)
            for key, value in attributes.items():
                if value is not None:
                    span.set_attribute(f"db.{key}", str(value))
            try:
                yield operation_id
                span.set_attribute("db.outcome", "success")
            except Exception as e:
                span.set_attribute("db.outcome", "error")
                with contextlib.suppress(Exception):
                    span.record_exception(e)
                raise
    finally:
        _operation_id.reset(token)
