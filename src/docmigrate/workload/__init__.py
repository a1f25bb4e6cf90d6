"""Seed data and live traffic for exercising a migration."""

from docmigrate.workload.generator import (
    OperationKind,
    OperationOutcome,
    WorkloadGenerator,
    WorkloadOperation,
)
from docmigrate.workload.seed import SEED_SCHEMA, PayloadFactory, SeedLoader, default_payload

__all__ = [
    "OperationKind",
    "OperationOutcome",
    "PayloadFactory",
    "SEED_SCHEMA",
    "SeedLoader",
    "WorkloadGenerator",
    "WorkloadOperation",
    "default_payload",
]
