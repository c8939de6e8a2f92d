"""Detección de inconsistencias entre un registro de progreso y el catálogo."""

from __future__ import annotations

from ..core.catalog import CourseDefinition
from ..core.state import ProgressRecord
from .issues import IntegrityIssue, IssueKind


class IntegrityValidator:
    """Compara un ProgressRecord con su CourseDefinition sin modificar nada."""

    def validate(self, course: CourseDefinition, record: ProgressRecord) -> list[IntegrityIssue]:
        """Listar los problemas del registro (lista vacía si es consistente)."""
        issues: list[IntegrityIssue] = []
        lessons = set(course.lesson_ids())
        modules = set(course.module_ids())

        # Referencias a ids inexistentes
        unknown_lessons = tuple(lid for lid in record.completed_lessons if lid not in lessons)
        if unknown_lessons:
            issues.append(self._invalid_reference(course, "completedLessons", unknown_lessons))

        unknown_modules = tuple(mid for mid in record.completed_modules if mid not in modules)
        if unknown_modules:
            issues.append(self._invalid_reference(course, "completedModules", unknown_modules))

        if record.current_lesson is not None and record.current_lesson not in lessons:
            issues.append(self._invalid_reference(course, "currentLesson", (record.current_lesson,)))
        if record.current_module is not None and record.current_module not in modules:
            issues.append(self._invalid_reference(course, "currentModule", (record.current_module,)))

        # Módulos completados sin todas sus lecciones
        completed_lessons = set(record.completed_lessons)
        valid_modules: set[str] = set()
        for module_id in record.completed_modules:
            module = course.get_module(module_id)
            if module is None:
                continue
            missing = [lid for lid in module.lessons if lid not in completed_lessons]
            if not missing:
                valid_modules.add(module_id)
                continue
            issues.append(
                IntegrityIssue(
                    kind=IssueKind.LOGICAL_INCONSISTENCY,
                    course_id=course.id,
                    field="completedModules",
                    ids=(module_id,),
                    message=f"El módulo {module_id} figura completado pero faltan lecciones: {', '.join(missing)}",
                    details={"missingLessons": missing},
                )
            )

        # Curso completado sin todos los módulos válidos
        if record.is_completed:
            pending = [mid for mid in course.module_ids() if mid not in valid_modules]
            if pending:
                issues.append(
                    IntegrityIssue(
                        kind=IssueKind.LOGICAL_INCONSISTENCY,
                        course_id=course.id,
                        field="isCompleted",
                        ids=tuple(pending),
                        message="El curso figura completado con módulos pendientes",
                        details={"pendingModules": pending},
                    )
                )

        if record.last_accessed < record.start_date:
            issues.append(
                IntegrityIssue(
                    kind=IssueKind.TEMPORAL_INCONSISTENCY,
                    course_id=course.id,
                    field="lastAccessed",
                    message="lastAccessed es anterior a startDate",
                    details={
                        "startDate": record.start_date.isoformat(),
                        "lastAccessed": record.last_accessed.isoformat(),
                    },
                )
            )

        return issues

    def _invalid_reference(
        self, course: CourseDefinition, field_name: str, ids: tuple[str, ...]
    ) -> IntegrityIssue:
        """Problema de ids que no existen en el catálogo."""
        return IntegrityIssue(
            kind=IssueKind.INVALID_REFERENCE,
            course_id=course.id,
            field=field_name,
            ids=ids,
            message=f"{field_name} referencia ids inexistentes en {course.id}: {', '.join(ids)}",
        )
