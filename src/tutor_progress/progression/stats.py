"""Estadísticas de progreso y de finalización de curso."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..core.catalog import CourseDefinition
from ..core.state import ProgressRecord

SECONDS_PER_DAY = 60 * 60 * 24
STUDY_HOURS_PER_DAY = 2  # supuesto para convertir horas estimadas a días


def days_between(start: datetime, end: datetime) -> int:
    """Días (redondeo hacia arriba) entre dos fechas."""
    return math.ceil(abs((end - start).total_seconds()) / SECONDS_PER_DAY)


def study_efficiency(actual_days: int, estimated_hours: float) -> str:
    """Clasificar el ritmo de estudio frente a la duración estimada."""
    estimated_days = math.ceil(estimated_hours / STUDY_HOURS_PER_DAY)
    if actual_days <= estimated_days:
        return "excellent"
    if actual_days <= estimated_days * 1.5:
        return "good"
    if actual_days <= estimated_days * 2:
        return "average"
    return "needs_improvement"


@dataclass(frozen=True)
class ProgressStats:
    """Resumen del progreso de un curso."""

    completed_lessons: int
    completed_modules: int
    total_score: int
    is_completed: bool
    start_date: datetime
    last_accessed: datetime
    days_active: int

    def to_dict(self) -> dict[str, Any]:
        """Convertir a diccionario."""
        return {
            "completedLessonsCount": self.completed_lessons,
            "completedModulesCount": self.completed_modules,
            "totalScore": self.total_score,
            "isCompleted": self.is_completed,
            "startDate": self.start_date.isoformat(),
            "lastAccessed": self.last_accessed.isoformat(),
            "daysActive": self.days_active,
        }


@dataclass(frozen=True)
class CompletionStats:
    """Estadísticas calculadas al completar un curso."""

    total_lessons: int
    total_modules: int
    total_score: int
    average_score: int
    study_duration: int  # días
    start_date: datetime
    completed_date: datetime
    efficiency: str  # excellent, good, average, needs_improvement

    def to_dict(self) -> dict[str, Any]:
        """Convertir a diccionario."""
        return {
            "totalLessons": self.total_lessons,
            "totalModules": self.total_modules,
            "totalScore": self.total_score,
            "averageScore": self.average_score,
            "studyDuration": self.study_duration,
            "startDate": self.start_date.isoformat(),
            "completedDate": self.completed_date.isoformat(),
            "efficiency": self.efficiency,
        }


def progress_stats(record: ProgressRecord) -> ProgressStats:
    """Calcular estadísticas de progreso de un registro."""
    return ProgressStats(
        completed_lessons=len(record.completed_lessons),
        completed_modules=len(record.completed_modules),
        total_score=record.total_score,
        is_completed=record.is_completed,
        start_date=record.start_date,
        last_accessed=record.last_accessed,
        days_active=days_between(record.start_date, record.last_accessed),
    )


def completion_stats(course: CourseDefinition, record: ProgressRecord, now: datetime) -> CompletionStats:
    """Calcular estadísticas de finalización de curso."""
    total_lessons = course.total_lessons
    duration = days_between(record.start_date, now)
    return CompletionStats(
        total_lessons=total_lessons,
        total_modules=len(course.modules),
        total_score=record.total_score,
        average_score=round(record.total_score / total_lessons) if total_lessons else 0,
        study_duration=duration,
        start_date=record.start_date,
        completed_date=now,
        efficiency=study_efficiency(duration, course.metadata.estimated_hours),
    )


@dataclass(frozen=True)
class Achievement:
    """Logro obtenido al completar un curso."""

    id: str
    title: str
    description: str
    earned_at: datetime

    def to_dict(self) -> dict[str, Any]:
        """Convertir a diccionario."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "earnedAt": self.earned_at.isoformat(),
        }


HIGH_SCORE_AVERAGE = 90
FAST_COMPLETION_DAYS = 7


def course_achievements(course: CourseDefinition, stats: CompletionStats) -> list[Achievement]:
    """Logros derivados de las estadísticas de finalización."""
    earned_at = stats.completed_date
    achievements = [
        Achievement(
            id=f"completion-{course.id}",
            title=f"{course.title} completado",
            description="Has completado el curso",
            earned_at=earned_at,
        )
    ]
    if stats.efficiency == "excellent":
        achievements.append(
            Achievement(
                id=f"efficiency-{course.id}",
                title="Estudiante eficiente",
                description="Has completado el curso antes de lo previsto",
                earned_at=earned_at,
            )
        )
    if stats.average_score >= HIGH_SCORE_AVERAGE:
        achievements.append(
            Achievement(
                id=f"high-score-{course.id}",
                title="Puntuación alta",
                description=f"Media de {HIGH_SCORE_AVERAGE} puntos o más por lección",
                earned_at=earned_at,
            )
        )
    if stats.study_duration <= FAST_COMPLETION_DAYS:
        achievements.append(
            Achievement(
                id=f"consistent-{course.id}",
                title="Estudio concentrado",
                description="Has completado el curso en una semana o menos",
                earned_at=earned_at,
            )
        )
    return achievements
