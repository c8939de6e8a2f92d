"""Taxonomía de problemas de integridad del progreso."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Any


class IssueKind(Enum):
    """Tipo de problema detectado."""

    MALFORMED_INPUT = "MALFORMED_INPUT"
    INVALID_REFERENCE = "INVALID_REFERENCE"
    DANGLING_REFERENCE = "INVALID_REFERENCE"  # alias
    LOGICAL_INCONSISTENCY = "LOGICAL_INCONSISTENCY"
    TEMPORAL_INCONSISTENCY = "TEMPORAL_INCONSISTENCY"
    STORAGE_WRITE_FAILURE = "STORAGE_WRITE_FAILURE"
    CATALOG_MISSING = "CATALOG_MISSING"


@dataclass(frozen=True)
class IntegrityIssue:
    """Un problema concreto, con datos suficientes para repararlo.

    Attributes:
        kind: Tipo de problema
        course_id: Curso afectado (None si afecta al blob completo)
        field: Campo del registro implicado (p. ej. "completedLessons")
        ids: Ids problemáticos dentro de ese campo
        message: Descripción legible
        details: Datos adicionales (lecciones faltantes, timestamps...)
    """

    kind: IssueKind
    course_id: str | None
    field: str | None = None
    ids: tuple[str, ...] = ()
    message: str = ""
    details: dict[str, Any] = dataclasses.field(default_factory=dict, compare=False)

    def to_dict(self) -> dict[str, Any]:
        """Convertir a diccionario."""
        return {
            "kind": self.kind.value,
            "courseId": self.course_id,
            "field": self.field,
            "ids": list(self.ids),
            "message": self.message,
            "details": dict(self.details),
        }
