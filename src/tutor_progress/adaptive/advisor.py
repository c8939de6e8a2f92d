"""Recomendación del siguiente paso según la tasa de acierto del estudiante.

La señal de rendimiento viene de fuera (etiquetado heurístico de conceptos):
aquí solo se consume como un mapa `concepto o lección -> tasa de acierto`.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ..core.catalog import LessonRef
from ..core.state import ProgressRecord

PROFICIENT_THRESHOLD = 0.8
STRUGGLING_THRESHOLD = 0.4
MAX_FOCUS_CONCEPTS = 3


@dataclass(frozen=True)
class Recommendation:
    """Siguiente paso recomendado."""

    kind: str  # advance, standard, review
    confidence: float
    reason: str  # código corto, p. ej. "high_success_rate"
    lesson_id: str | None = None
    success_rate: float | None = None
    focus_concepts: tuple[str, ...] = field(default=())

    def to_dict(self) -> dict[str, Any]:
        """Convertir a diccionario."""
        return {
            "kind": self.kind,
            "confidence": self.confidence,
            "reason": self.reason,
            "lessonId": self.lesson_id,
            "successRate": self.success_rate,
            "focusConcepts": list(self.focus_concepts),
        }


def overall_success_rate(signal: Mapping[str, float]) -> float | None:
    """Media de las tasas de acierto (None si no hay datos)."""
    if not signal:
        return None
    for key, rate in signal.items():
        if isinstance(rate, bool) or not isinstance(rate, (int, float)) or not 0.0 <= rate <= 1.0:
            raise ValueError(f"Tasa de acierto fuera de rango para {key}: {rate!r}")
    return sum(signal.values()) / len(signal)


def proficiency_level(success_rate: float) -> str:
    """Nivel de competencia para una tasa de acierto."""
    if success_rate >= 0.9:
        return "expert"
    if success_rate >= PROFICIENT_THRESHOLD:
        return "proficient"
    if success_rate >= 0.6:
        return "intermediate"
    if success_rate >= STRUGGLING_THRESHOLD:
        return "beginner"
    return "struggling"


class RecommendationAdvisor:
    """Política de solo lectura: no guarda ni modifica nada."""

    def __init__(
        self,
        proficient: float = PROFICIENT_THRESHOLD,
        struggling: float = STRUGGLING_THRESHOLD,
    ) -> None:
        """Inicializar con los umbrales de tasa de acierto."""
        if not 0.0 <= struggling < proficient <= 1.0:
            raise ValueError("Se requiere 0 <= struggling < proficient <= 1")
        self.proficient = proficient
        self.struggling = struggling

    def classify(self, success_rate: float) -> str:
        """advance / standard / review según los umbrales."""
        if success_rate >= self.proficient:
            return "advance"
        if success_rate <= self.struggling:
            return "review"
        return "standard"

    def recommend(
        self,
        record: ProgressRecord | None,
        signal: Mapping[str, float] | None = None,
        next_lesson: LessonRef | None = None,
        current_lesson: str | None = None,
    ) -> Recommendation:
        """Recomendar el siguiente paso."""
        next_id = next_lesson.lesson_id if next_lesson else None

        if record is not None and record.is_completed:
            return Recommendation(kind="advance", confidence=1.0, reason="course_completed")

        rate = overall_success_rate(signal or {})
        if rate is None:
            return Recommendation(
                kind="standard",
                confidence=0.5,
                reason="no_performance_data",
                lesson_id=next_id,
            )

        kind = self.classify(rate)
        if kind == "advance":
            return Recommendation(
                kind="advance",
                confidence=0.9,
                reason="high_success_rate",
                lesson_id=next_id,
                success_rate=rate,
            )

        if kind == "review":
            review_target = current_lesson or (record.current_lesson if record else None)
            return Recommendation(
                kind="review",
                confidence=0.8,
                reason="low_success_rate",
                lesson_id=review_target,
                success_rate=rate,
                focus_concepts=self.focus_concepts(signal or {}),
            )

        return Recommendation(
            kind="standard",
            confidence=0.8,
            reason="steady_progress",
            lesson_id=next_id,
            success_rate=rate,
        )

    def focus_concepts(self, signal: Mapping[str, float]) -> tuple[str, ...]:
        """Conceptos por debajo del umbral de dificultad, del peor al mejor."""
        weak = sorted(
            (rate, key) for key, rate in signal.items() if rate <= self.struggling
        )
        return tuple(key for _, key in weak[:MAX_FOCUS_CONCEPTS])
