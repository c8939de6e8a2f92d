"""Progresión: desbloqueo, cascada de compleción y estadísticas."""

from .unlock import AccessResult, LessonLockedError, UnlockEvaluator, UnlockRequirements
from .stats import Achievement, CompletionStats, ProgressStats
from .cascade import (
    CascadeEvent,
    CascadeResult,
    CompletionCascade,
    CourseCompleted,
    LessonUnlocked,
    ModuleCompleted,
    ModuleUnlocked,
)

__all__ = [
    "AccessResult",
    "LessonLockedError",
    "UnlockEvaluator",
    "UnlockRequirements",
    "Achievement",
    "CompletionStats",
    "ProgressStats",
    "CascadeEvent",
    "CascadeResult",
    "CompletionCascade",
    "CourseCompleted",
    "LessonUnlocked",
    "ModuleCompleted",
    "ModuleUnlocked",
]
