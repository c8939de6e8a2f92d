"""Propagación de una lección completada a módulos y curso."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

from ..core.catalog import CourseCatalog, CourseDefinition
from ..core.persistence import ProgressStore, SaveStatus
from ..core.state import ProgressRecord
from .stats import Achievement, CompletionStats, completion_stats, course_achievements
from .unlock import prerequisites_met

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CascadeEvent:
    """Evento base emitido por la cascada."""

    type: ClassVar[str] = "event"

    def to_dict(self) -> dict[str, Any]:
        """Convertir a diccionario."""
        return {"type": self.type}


@dataclass(frozen=True)
class LessonUnlocked(CascadeEvent):
    """La siguiente lección del módulo pasa a ser accesible."""

    type: ClassVar[str] = "LessonUnlocked"

    lesson_id: str
    module_id: str
    module_title: str
    reason: str = "previous_lesson_completed"

    def to_dict(self) -> dict[str, Any]:
        """Convertir a diccionario."""
        return {
            "type": self.type,
            "lessonId": self.lesson_id,
            "moduleId": self.module_id,
            "moduleTitle": self.module_title,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class ModuleCompleted(CascadeEvent):
    """Todas las lecciones del módulo están completadas."""

    type: ClassVar[str] = "ModuleCompleted"

    module_id: str
    module_title: str
    completed_lessons: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Convertir a diccionario."""
        return {
            "type": self.type,
            "moduleId": self.module_id,
            "moduleTitle": self.module_title,
            "completedLessons": list(self.completed_lessons),
        }


@dataclass(frozen=True)
class ModuleUnlocked(CascadeEvent):
    """Los prerrequisitos de un módulo acaban de cumplirse."""

    type: ClassVar[str] = "ModuleUnlocked"

    module_id: str
    module_title: str
    first_lesson_id: str | None
    unlocked_by: tuple[str, ...] = ()
    reason: str = "prerequisites_completed"

    def to_dict(self) -> dict[str, Any]:
        """Convertir a diccionario."""
        return {
            "type": self.type,
            "moduleId": self.module_id,
            "moduleTitle": self.module_title,
            "firstLessonId": self.first_lesson_id,
            "unlockedBy": list(self.unlocked_by),
            "reason": self.reason,
        }


@dataclass(frozen=True)
class CourseCompleted(CascadeEvent):
    """Todos los módulos del curso están completados."""

    type: ClassVar[str] = "CourseCompleted"

    course_id: str
    course_title: str
    stats: CompletionStats | None = None
    achievements: tuple[Achievement, ...] = ()
    recommended_courses: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Convertir a diccionario."""
        return {
            "type": self.type,
            "courseId": self.course_id,
            "courseTitle": self.course_title,
            "stats": self.stats.to_dict() if self.stats else None,
            "achievements": [achievement.to_dict() for achievement in self.achievements],
            "recommendedCourses": list(self.recommended_courses),
        }


@dataclass
class CascadeResult:
    """Resultado de registrar una lección: eventos en orden de emisión."""

    course_id: str
    lesson_id: str | None = None
    score: int = 0
    events: list[CascadeEvent] = field(default_factory=list)
    save_status: SaveStatus = SaveStatus.SAVED

    @property
    def degraded(self) -> bool:
        """El progreso solo vive en memoria (no se pudo persistir)."""
        return self.save_status is SaveStatus.DEGRADED

    @property
    def completed_modules(self) -> list[str]:
        """Módulos completados en esta cascada."""
        return [e.module_id for e in self.events if isinstance(e, ModuleCompleted)]

    @property
    def unlocked_modules(self) -> list[str]:
        """Módulos desbloqueados en esta cascada."""
        return [e.module_id for e in self.events if isinstance(e, ModuleUnlocked)]

    @property
    def unlocked_lessons(self) -> list[str]:
        """Lecciones desbloqueadas en esta cascada."""
        return [e.lesson_id for e in self.events if isinstance(e, LessonUnlocked)]

    @property
    def course_completed(self) -> bool:
        """Indica si la cascada completó el curso."""
        return any(isinstance(e, CourseCompleted) for e in self.events)

    def to_dict(self) -> dict[str, Any]:
        """Convertir a diccionario."""
        return {
            "courseId": self.course_id,
            "lessonId": self.lesson_id,
            "score": self.score,
            "events": [event.to_dict() for event in self.events],
            "saveStatus": self.save_status.value,
        }


def recommend_courses(
    catalog: CourseCatalog, store: ProgressStore, completed_course_id: str, limit: int = 3
) -> list[CourseDefinition]:
    """Otros cursos no completados, en orden del catálogo."""
    recommended = []
    for course in catalog:
        if course.id == completed_course_id:
            continue
        record = store.get_record(course.id)
        if record is None or not record.is_completed:
            recommended.append(course)
    return recommended[:limit]


class CompletionCascade:
    """Detecta módulos completados, módulos desbloqueados y curso completado."""

    def __init__(
        self,
        store: ProgressStore,
        clock: Callable[[], datetime] | None = None,
        catalog: CourseCatalog | None = None,
    ) -> None:
        """Inicializar; sin catálogo no se recomiendan otros cursos al completar."""
        self.store = store
        self.clock = clock or store.clock
        self.catalog = catalog

    def run(
        self,
        course: CourseDefinition,
        record: ProgressRecord,
        completed_lesson_id: str | None = None,
    ) -> list[CascadeEvent]:
        """Ejecutar la cascada hasta un punto fijo.

        `completed_lesson_id` solo debe pasarse cuando la lección acaba de
        añadirse; sin nuevas compleciones el resultado es una lista vacía.
        """
        events: list[CascadeEvent] = []
        modules_before = set(record.completed_modules)
        satisfied_before = {
            module.id for module in course.modules if prerequisites_met(module, modules_before)
        }

        if completed_lesson_id is not None:
            events.extend(self._lesson_unlocks(course, record, completed_lesson_id))

        changed = True
        while changed:
            changed = False
            for module in course.modules:
                if record.has_module(module.id):
                    continue
                if all(record.has_lesson(lesson_id) for lesson_id in module.lessons):
                    record = self.store.mark_module_completed(course.id, module.id)
                    events.append(
                        ModuleCompleted(
                            module_id=module.id,
                            module_title=module.title,
                            completed_lessons=module.lessons,
                        )
                    )
                    logger.info("Módulo completado: %s/%s", course.id, module.id)
                    changed = True

        newly_completed = set(record.completed_modules) - modules_before
        for module in course.modules:
            if module.id in satisfied_before or record.has_module(module.id):
                continue
            if prerequisites_met(module, record.completed_modules):
                events.append(
                    ModuleUnlocked(
                        module_id=module.id,
                        module_title=module.title,
                        first_lesson_id=module.first_lesson,
                        unlocked_by=tuple(p for p in module.prerequisites if p in newly_completed),
                    )
                )
                logger.info("Módulo desbloqueado: %s/%s", course.id, module.id)

        all_done = all(record.has_module(module.id) for module in course.modules)
        if all_done and not record.is_completed:
            record = self.store.mark_course_completed(course.id)
            stats = completion_stats(course, record, self.clock())
            recommended = (
                recommend_courses(self.catalog, self.store, course.id) if self.catalog is not None else []
            )
            events.append(
                CourseCompleted(
                    course_id=course.id,
                    course_title=course.title,
                    stats=stats,
                    achievements=tuple(course_achievements(course, stats)),
                    recommended_courses=tuple(c.id for c in recommended),
                )
            )
            logger.info("Curso completado: %s", course.id)

        return events

    def _lesson_unlocks(
        self, course: CourseDefinition, record: ProgressRecord, lesson_id: str
    ) -> list[CascadeEvent]:
        """Siguiente lección del mismo módulo, si pasa a ser accesible."""
        module = course.find_module_for_lesson(lesson_id)
        if module is None or not prerequisites_met(module, record.completed_modules):
            return []
        next_lesson = module.next_lesson(lesson_id)
        if next_lesson is None or record.has_lesson(next_lesson):
            return []
        return [LessonUnlocked(lesson_id=next_lesson, module_id=module.id, module_title=module.title)]
