"""Estado del progreso del estudiante en un curso."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


def utcnow() -> datetime:
    """Fecha/hora actual en UTC (con zona horaria)."""
    return datetime.now(UTC)


def parse_timestamp(value: Any) -> datetime:
    """Parsear un timestamp ISO 8601. Los valores sin zona se interpretan como UTC."""
    if not isinstance(value, str) or not value:
        raise ValueError(f"Timestamp inválido: {value!r}")
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _id_list(data: dict[str, Any], key: str) -> list[str]:
    """Leer una lista de ids, eliminando duplicados y conservando el orden."""
    raw = data.get(key, [])
    if not isinstance(raw, list) or not all(isinstance(item, str) for item in raw):
        raise ValueError(f"'{key}' debe ser una lista de strings")
    return list(dict.fromkeys(raw))


def _optional_id(data: dict[str, Any], key: str) -> str | None:
    """Leer un id opcional (string o null)."""
    value = data.get(key)
    if value is None or isinstance(value, str):
        return value
    raise ValueError(f"'{key}' debe ser string o null")


def _score(data: dict[str, Any]) -> int:
    """Leer la puntuación total como entero no negativo."""
    raw = data.get("totalScore", 0)
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise ValueError(f"'totalScore' no es numérico: {raw!r}")
    # 10.0 se acepta; 10.7 no
    if isinstance(raw, float) and not (math.isfinite(raw) and raw.is_integer()):
        raise ValueError(f"'totalScore' no es un entero: {raw!r}")
    if raw < 0:
        raise ValueError(f"'totalScore' negativo: {raw!r}")
    return int(raw)


@dataclass
class ProgressRecord:
    """Progreso de un estudiante en un curso."""

    course_id: str
    completed_lessons: list[str] = field(default_factory=list)
    completed_modules: list[str] = field(default_factory=list)
    total_score: int = 0
    start_date: datetime = field(default_factory=utcnow)
    last_accessed: datetime = field(default_factory=utcnow)
    is_completed: bool = False
    current_module: str | None = None
    current_lesson: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convertir a diccionario (formato persistido)."""
        return {
            "completedLessons": list(self.completed_lessons),
            "completedModules": list(self.completed_modules),
            "totalScore": self.total_score,
            "startDate": self.start_date.isoformat(),
            "lastAccessed": self.last_accessed.isoformat(),
            "isCompleted": self.is_completed,
            "currentModule": self.current_module,
            "currentLesson": self.current_lesson,
        }

    @classmethod
    def from_dict(cls, course_id: str, data: Any, now: datetime | None = None) -> ProgressRecord:
        """Crear desde diccionario persistido.

        Los campos ausentes (formatos antiguos) reciben valores por defecto;
        los campos presentes con un tipo que no se puede interpretar lanzan
        ValueError.
        """
        if not isinstance(data, dict):
            raise ValueError(f"El progreso de {course_id} no es un objeto")

        now = now or utcnow()
        start = data.get("startDate")
        last = data.get("lastAccessed")
        is_completed = data.get("isCompleted", False)
        if not isinstance(is_completed, bool):
            raise ValueError(f"'isCompleted' no es booleano: {is_completed!r}")

        return cls(
            course_id=course_id,
            completed_lessons=_id_list(data, "completedLessons"),
            completed_modules=_id_list(data, "completedModules"),
            total_score=_score(data),
            start_date=parse_timestamp(start) if start is not None else now,
            last_accessed=parse_timestamp(last) if last is not None else now,
            is_completed=is_completed,
            current_module=_optional_id(data, "currentModule"),
            current_lesson=_optional_id(data, "currentLesson"),
        )

    @classmethod
    def fresh(cls, course_id: str, now: datetime | None = None) -> ProgressRecord:
        """Registro vacío con startDate = lastAccessed = ahora."""
        now = now or utcnow()
        return cls(course_id=course_id, start_date=now, last_accessed=now)

    def copy(self) -> ProgressRecord:
        """Copia independiente del registro."""
        return ProgressRecord(
            course_id=self.course_id,
            completed_lessons=list(self.completed_lessons),
            completed_modules=list(self.completed_modules),
            total_score=self.total_score,
            start_date=self.start_date,
            last_accessed=self.last_accessed,
            is_completed=self.is_completed,
            current_module=self.current_module,
            current_lesson=self.current_lesson,
        )

    def has_lesson(self, lesson_id: str) -> bool:
        """Indica si la lección está completada."""
        return lesson_id in self.completed_lessons

    def has_module(self, module_id: str) -> bool:
        """Indica si el módulo está completado."""
        return module_id in self.completed_modules

    def add_lesson(self, lesson_id: str) -> bool:
        """Añadir lección completada. Retorna True si no estaba."""
        if lesson_id in self.completed_lessons:
            return False
        self.completed_lessons.append(lesson_id)
        return True

    def add_module(self, module_id: str) -> bool:
        """Añadir módulo completado. Retorna True si no estaba."""
        if module_id in self.completed_modules:
            return False
        self.completed_modules.append(module_id)
        return True

    def touch(self, now: datetime | None = None) -> None:
        """Actualizar timestamp de último acceso."""
        self.last_accessed = now or utcnow()
