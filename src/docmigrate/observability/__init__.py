"""
Observability utilities for docmigrate.

Stores, the bulk copy runner and the migration coordinator take an injected
Tracer and open spans keyed by the ATTR_* constants defined here.

Note:
    OpenTelemetry is an optional dependency. All utilities in this module
    gracefully handle the case where OpenTelemetry is not installed.
"""

from docmigrate.observability.attributes import (
    ATTR_BATCH_SIZE,
    ATTR_CHECKPOINT,
    ATTR_COLLECTION,
    ATTR_CONFLICT_POLICY,
    ATTR_DB_NAME,
    ATTR_DB_SYSTEM,
    ATTR_DEST_COLLECTION,
    ATTR_DOCUMENT_COUNT,
    ATTR_DOCUMENT_ID,
    ATTR_JOB_ID,
    ATTR_MIGRATION_PHASE,
    ATTR_SOURCE_COLLECTION,
    ATTR_THROUGHPUT_LIMIT,
    ATTR_VERSION,
    ATTR_VERSION_MODE,
)
from docmigrate.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    RecordedSpan,
    Tracer,
    create_tracer,
    normalize_attributes,
)
from docmigrate.observability.tracing import OTEL_AVAILABLE, should_trace

__all__ = [
    # Tracing
    "OTEL_AVAILABLE",
    "should_trace",
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "RecordedSpan",
    "create_tracer",
    "normalize_attributes",
    # Attributes
    "ATTR_BATCH_SIZE",
    "ATTR_CHECKPOINT",
    "ATTR_COLLECTION",
    "ATTR_CONFLICT_POLICY",
    "ATTR_DB_NAME",
    "ATTR_DB_SYSTEM",
    "ATTR_DEST_COLLECTION",
    "ATTR_DOCUMENT_COUNT",
    "ATTR_DOCUMENT_ID",
    "ATTR_JOB_ID",
    "ATTR_MIGRATION_PHASE",
    "ATTR_SOURCE_COLLECTION",
    "ATTR_THROUGHPUT_LIMIT",
    "ATTR_VERSION",
    "ATTR_VERSION_MODE",
]
