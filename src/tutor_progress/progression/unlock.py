"""Reglas de desbloqueo de lecciones y módulos.

Funciones puras sobre (CourseDefinition, ProgressRecord): no escriben nada.
Un registro ausente (curso nunca seleccionado) se considera sin desbloqueos.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from ..core.catalog import CourseDefinition, LessonRef, ModuleDefinition
from ..core.state import ProgressRecord

logger = logging.getLogger(__name__)


class LessonLockedError(PermissionError):
    """Acceso a una lección que todavía no está desbloqueada."""

    def __init__(self, course_id: str, lesson_id: str, requirements: UnlockRequirements | None = None) -> None:
        """Inicializar con el curso, la lección y lo que falta para desbloquearla."""
        super().__init__(f"La lección {lesson_id} aún no está desbloqueada (curso: {course_id})")
        self.course_id = course_id
        self.lesson_id = lesson_id
        self.requirements = requirements


@dataclass
class UnlockRequirements:
    """Qué falta para desbloquear una lección."""

    lesson_id: str
    module_id: str
    module_title: str
    missing_prerequisites: list[str] = field(default_factory=list)
    missing_previous_lessons: list[str] = field(default_factory=list)

    @property
    def satisfied(self) -> bool:
        """Indica si no falta nada para el desbloqueo."""
        return not self.missing_prerequisites and not self.missing_previous_lessons

    def to_dict(self) -> dict[str, Any]:
        """Convertir a diccionario."""
        return {
            "lessonId": self.lesson_id,
            "moduleId": self.module_id,
            "moduleTitle": self.module_title,
            "missingPrerequisites": list(self.missing_prerequisites),
            "missingPreviousLessons": list(self.missing_previous_lessons),
        }


@dataclass
class AccessResult:
    """Resultado de un intento de acceso a una lección."""

    lesson_id: str
    allowed: bool
    reason: str  # unlocked, prerequisites_incomplete, previous_lesson_incomplete, unknown_lesson, no_progress
    requirements: UnlockRequirements | None = None


def prerequisites_met(module: ModuleDefinition, completed_modules: Iterable[str]) -> bool:
    """Todos los prerrequisitos del módulo están completados."""
    done = set(completed_modules)
    return all(prereq in done for prereq in module.prerequisites)


class UnlockEvaluator:
    """Evalúa qué lecciones y módulos son accesibles."""

    def is_module_unlocked(
        self, course: CourseDefinition, module_id: str, record: ProgressRecord | None
    ) -> bool:
        """El módulo es accesible si todos sus prerrequisitos están completados."""
        if record is None:
            return False
        module = course.get_module(module_id)
        if module is None:
            logger.debug("Módulo %s no existe en %s", module_id, course.id)
            return False
        return prerequisites_met(module, record.completed_modules)

    def is_lesson_unlocked(
        self, course: CourseDefinition, lesson_id: str, record: ProgressRecord | None
    ) -> bool:
        """La lección es accesible si su módulo lo es y la anterior está completada."""
        return self._unlocked(course, lesson_id, record)

    def _unlocked(self, course: CourseDefinition, lesson_id: str, record: ProgressRecord | None) -> bool:
        """Regla de desbloqueo de una lección."""
        if record is None:
            return False
        module = course.find_module_for_lesson(lesson_id)
        if module is None:
            logger.debug("Lección %s no pertenece a ningún módulo de %s", lesson_id, course.id)
            return False
        if not prerequisites_met(module, record.completed_modules):
            return False
        previous = module.previous_lesson(lesson_id)
        return previous is None or record.has_lesson(previous)

    def get_unlock_requirements(
        self, course: CourseDefinition, lesson_id: str, record: ProgressRecord | None
    ) -> UnlockRequirements | None:
        """Requisitos pendientes de una lección (None si la lección no existe)."""
        module = course.find_module_for_lesson(lesson_id)
        if module is None:
            logger.debug("Lección %s no pertenece a ningún módulo de %s", lesson_id, course.id)
            return None

        completed_modules = set(record.completed_modules) if record else set()
        requirements = UnlockRequirements(
            lesson_id=lesson_id,
            module_id=module.id,
            module_title=module.title,
            missing_prerequisites=[p for p in module.prerequisites if p not in completed_modules],
        )
        previous = module.previous_lesson(lesson_id)
        if previous is not None and (record is None or not record.has_lesson(previous)):
            requirements.missing_previous_lessons.append(previous)
        return requirements

    def get_next_lesson(self, course: CourseDefinition, record: ProgressRecord | None) -> LessonRef | None:
        """Primera lección (orden del catálogo) no completada y desbloqueada."""
        if record is None:
            return None
        for ref in course.iter_lessons():
            if not record.has_lesson(ref.lesson_id) and self._unlocked(course, ref.lesson_id, record):
                return ref
        return None

    def get_unlocked_lessons(
        self, course: CourseDefinition, record: ProgressRecord | None
    ) -> list[tuple[LessonRef, bool]]:
        """Lecciones desbloqueadas en orden, con su estado de completado."""
        if record is None:
            return []
        return [
            (ref, record.has_lesson(ref.lesson_id))
            for ref in course.iter_lessons()
            if self._unlocked(course, ref.lesson_id, record)
        ]

    def get_next_unlock_info(
        self, course: CourseDefinition, record: ProgressRecord | None
    ) -> UnlockRequirements | None:
        """Requisitos de la primera lección bloqueada y no completada."""
        if record is None:
            return None
        for ref in course.iter_lessons():
            if record.has_lesson(ref.lesson_id) or self._unlocked(course, ref.lesson_id, record):
                continue
            return self.get_unlock_requirements(course, ref.lesson_id, record)
        return None

    def attempt_access(
        self, course: CourseDefinition, lesson_id: str, record: ProgressRecord | None
    ) -> AccessResult:
        """Intento de acceso controlado: nunca lanza."""
        requirements = self.get_unlock_requirements(course, lesson_id, record)
        if requirements is None:
            return AccessResult(lesson_id=lesson_id, allowed=False, reason="unknown_lesson")
        if record is None:
            return AccessResult(lesson_id, allowed=False, reason="no_progress", requirements=requirements)
        if requirements.missing_prerequisites:
            reason = "prerequisites_incomplete"
        elif requirements.missing_previous_lessons:
            reason = "previous_lesson_incomplete"
        else:
            return AccessResult(lesson_id, allowed=True, reason="unlocked", requirements=requirements)
        logger.info("Acceso denegado a %s/%s: %s", course.id, lesson_id, reason)
        return AccessResult(lesson_id, allowed=False, reason=reason, requirements=requirements)

    def enforce_access(self, course: CourseDefinition, lesson_id: str, record: ProgressRecord | None) -> None:
        """Lanzar LessonLockedError si la lección no es accesible."""
        result = self.attempt_access(course, lesson_id, record)
        if not result.allowed:
            raise LessonLockedError(course.id, lesson_id, result.requirements)

    def get_course_unlock_status(
        self, course: CourseDefinition, record: ProgressRecord | None
    ) -> dict[str, Any]:
        """Tabla de estado de desbloqueo por módulo y lección."""
        modules = []
        for module in course.modules:
            lessons = [
                {
                    "lessonId": lesson_id,
                    "isUnlocked": self._unlocked(course, lesson_id, record),
                    "isCompleted": record is not None and record.has_lesson(lesson_id),
                }
                for lesson_id in module.lessons
            ]
            modules.append({
                "moduleId": module.id,
                "moduleTitle": module.title,
                "isUnlocked": self.is_module_unlocked(course, module.id, record),
                "isCompleted": record is not None and record.has_module(module.id),
                "totalLessons": len(module.lessons),
                "completedLessons": sum(1 for lesson in lessons if lesson["isCompleted"]),
                "unlockedLessons": sum(1 for lesson in lessons if lesson["isUnlocked"]),
                "lessons": lessons,
                "prerequisites": list(module.prerequisites),
            })

        return {
            "courseId": course.id,
            "courseTitle": course.title,
            "modules": modules,
            "totalModules": len(course.modules),
            "completedModules": sum(1 for module in modules if module["isCompleted"]),
            "unlockedModules": sum(1 for module in modules if module["isUnlocked"]),
        }
