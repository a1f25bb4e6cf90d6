"""
Tracers used by docmigrate components.

The document stores, the bulk copy runner and the migration coordinator take
a ``tracer=`` argument (or build one with create_tracer()) and wrap their
operations in spans named
``docmigrate.<component>.<operation>``, for example
``docmigrate.coordinator.run_phase_two`` or
``docmigrate.bulk_copy.write_batch``.

Span attributes use the ``ATTR_*`` keys from
docmigrate.observability.attributes. Values are normalized before they
reach a span: enums become their value and None entries are dropped, since
OpenTelemetry only accepts str, bool, int and float attribute values.

Example:
    >>> tracer = create_tracer(__name__, enable_tracing=True)
    >>> with tracer.span("docmigrate.in_memory_store.refresh", {ATTR_COLLECTION: "test_2"}):
    ...     await store.refresh("test_2")
"""

from __future__ import annotations

import contextlib
from collections.abc import Generator
from contextlib import AbstractContextManager
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from opentelemetry.trace import Span

from docmigrate.observability.tracing import should_trace


def normalize_attributes(attributes: dict[str, Any] | None) -> dict[str, Any] | None:
    """
    Prepare span attributes for recording.

    Enum values are replaced by their ``value`` and None entries are removed.

    Args:
        attributes: Attributes as passed by a component, or None

    Returns:
        The normalized attributes, or None if none were given
    """
    if attributes is None:
        return None
    return {
        key: value.value if isinstance(value, Enum) else value
        for key, value in attributes.items()
        if value is not None
    }


@runtime_checkable
class Tracer(Protocol):
    """
    What docmigrate components need from a tracer.

    Implementations:
    - NullTracer: tracing disabled or OpenTelemetry missing
    - OpenTelemetryTracer: real spans through the OpenTelemetry API
    - MockTracer: records spans so tests can assert on them
    """

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        """
        Open a span around a block of work.

        Args:
            name: Span name, ``docmigrate.<component>.<operation>``
            attributes: Span attributes keyed by ``ATTR_*`` constants

        Returns:
            Context manager yielding the span, or None when nothing is recorded
        """
        ...

    @property
    def enabled(self) -> bool:
        """Whether spans are actually recorded."""
        ...


class NullTracer:
    """Tracer that records nothing."""

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[None, None, None]:
        yield None

    @property
    def enabled(self) -> bool:
        return False


class OpenTelemetryTracer:
    """
    Tracer backed by the OpenTelemetry API.

    Spans are started as the current span, so a bulk copy's per-batch spans
    nest under the coordinator's phase span. Exceptions escaping a span are
    recorded on it by OpenTelemetry.

    Args:
        tracer_name: Instrumentation scope name (typically __name__)

    Raises:
        ImportError: If OpenTelemetry is not installed
    """

    def __init__(self, tracer_name: str) -> None:
        from opentelemetry import trace

        self._tracer = trace.get_tracer(tracer_name)

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        return self._tracer.start_as_current_span(
            name,
            attributes=normalize_attributes(attributes) or {},
        )

    @property
    def enabled(self) -> bool:
        return True


@dataclass(frozen=True)
class RecordedSpan:
    """
    A span captured by MockTracer.

    Attributes:
        name: Span name
        attributes: Normalized attributes, None if the span had none
        error: Class name of the exception that escaped the span, if any
    """

    name: str
    attributes: dict[str, Any] | None = None
    error: str | None = None


class MockTracer:
    """
    Tracer for tests that keeps every span it opens.

    ``spans`` holds ``(name, attributes)`` pairs in opening order;
    ``recorded`` additionally knows which spans ended with an exception.

    Example:
        >>> tracer = MockTracer()
        >>> coordinator = MigrationCoordinator(store, tracer=tracer)
        >>> await coordinator.run_phase_one("test_1", "test_2", SEED_SCHEMA)
        >>> tracer.span_names[0]
        'docmigrate.coordinator.run_phase_one'
    """

    def __init__(self) -> None:
        self.recorded: list[RecordedSpan] = []

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[None, None, None]:
        index = len(self.recorded)
        normalized = normalize_attributes(attributes)
        self.recorded.append(RecordedSpan(name, normalized))
        try:
            yield None
        except BaseException as e:
            self.recorded[index] = RecordedSpan(name, normalized, type(e).__name__)
            raise

    @property
    def enabled(self) -> bool:
        return True

    @property
    def spans(self) -> list[tuple[str, dict[str, Any] | None]]:
        return [(span.name, span.attributes) for span in self.recorded]

    @property
    def span_names(self) -> list[str]:
        return [span.name for span in self.recorded]

    def attributes_of(self, name: str) -> dict[str, Any] | None:
        """
        Get the attributes of the first span with the given name.

        Raises:
            KeyError: If no such span was opened
        """
        for span in self.recorded:
            if span.name == name:
                return span.attributes
        raise KeyError(name)

    def failed(self) -> list[RecordedSpan]:
        """Spans that an exception escaped from."""
        return [span for span in self.recorded if span.error is not None]

    def clear(self) -> None:
        self.recorded.clear()


def create_tracer(
    name: str,
    enable_tracing: bool = True,
) -> Tracer:
    """
    Pick the tracer for a component.

    Args:
        name: Instrumentation scope name (typically __name__)
        enable_tracing: The component's enable_tracing setting

    Returns:
        OpenTelemetryTracer when tracing is enabled and OpenTelemetry is
        installed, NullTracer otherwise
    """
    if should_trace(enable_tracing):
        return OpenTelemetryTracer(name)
    return NullTracer()


__all__ = [
    "MockTracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "RecordedSpan",
    "Tracer",
    "create_tracer",
    "normalize_attributes",
]
