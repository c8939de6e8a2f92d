"""Integridad: detección y reparación de progreso inconsistente."""

from .issues import IntegrityIssue, IssueKind
from .validator import IntegrityValidator
from .repair import RepairAction, RepairEngine, RepairReport

__all__ = [
    "IntegrityIssue",
    "IssueKind",
    "IntegrityValidator",
    "RepairAction",
    "RepairEngine",
    "RepairReport",
]
