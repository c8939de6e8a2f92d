"""Reparación determinista de registros de progreso inconsistentes."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..core.catalog import CourseDefinition
from ..core.state import ProgressRecord, utcnow
from .issues import IntegrityIssue, IssueKind
from .validator import IntegrityValidator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RepairAction:
    """Un paso de reparación con instantáneas antes/después."""

    action: str  # remove_ids, clear_pointer, downgrade_module, clear_course_completion, touch_last_accessed, reset
    issue: IntegrityIssue | None
    before: dict[str, Any] | None
    after: dict[str, Any]


@dataclass
class RepairReport:
    """Resultado de reparar el progreso de un curso."""

    course_id: str
    record: ProgressRecord
    issues: list[IntegrityIssue] = field(default_factory=list)
    actions: list[RepairAction] = field(default_factory=list)
    reset: bool = False
    remaining_issues: list[IntegrityIssue] = field(default_factory=list)  # los que forzaron el reinicio

    @property
    def changed(self) -> bool:
        """Indica si se aplicó alguna corrección."""
        return bool(self.actions)


class RepairEngine:
    """Aplica correcciones mínimas; si no convergen, reinicia el curso."""

    def __init__(
        self,
        validator: IntegrityValidator | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Inicializar con validador y reloj."""
        self.validator = validator or IntegrityValidator()
        self.clock = clock

    def repair(
        self,
        course: CourseDefinition,
        record: ProgressRecord | None,
        issues: list[IntegrityIssue] | None = None,
    ) -> RepairReport:
        """Reparar el registro de un curso. No lanza salvo fallo del reinicio."""
        if issues is None:
            issues = self.validator.validate(course, record) if record is not None else []
        issues = [issue for issue in issues if issue.course_id in (None, course.id)]

        if any(issue.kind is IssueKind.MALFORMED_INPUT for issue in issues):
            return self._reset(course, record, issues, reason="malformed_input")
        if record is None:
            return self._reset(course, record, issues, reason="missing_record")

        report = RepairReport(course_id=course.id, record=record.copy(), issues=list(issues))
        if not issues:
            return report

        try:
            for issue in issues:
                self._apply(report, issue)
            remaining = self.validator.validate(course, report.record)
        except Exception:
            logger.exception("Error inesperado reparando %s; se reinicia el progreso del curso", course.id)
            return self._reset(course, record, issues, reason="repair_error", actions=report.actions)

        if remaining:
            logger.warning(
                "La reparación de %s no convergió (%d problemas restantes); se reinicia el curso",
                course.id,
                len(remaining),
            )
            return self._reset(
                course, record, issues, reason="not_converged", actions=report.actions, remaining=remaining
            )

        logger.info("Progreso de %s reparado con %d acciones", course.id, len(report.actions))
        return report

    def _apply(self, report: RepairReport, issue: IntegrityIssue) -> None:
        """Aplicar la corrección mínima para un problema."""
        record = report.record
        before = record.to_dict()

        if issue.kind is IssueKind.INVALID_REFERENCE:
            if issue.field == "completedLessons":
                record.completed_lessons = [lid for lid in record.completed_lessons if lid not in issue.ids]
                action = "remove_ids"
            elif issue.field == "completedModules":
                record.completed_modules = [mid for mid in record.completed_modules if mid not in issue.ids]
                action = "remove_ids"
            elif issue.field == "currentLesson":
                record.current_lesson = None
                action = "clear_pointer"
            elif issue.field == "currentModule":
                record.current_module = None
                action = "clear_pointer"
            else:
                return
        elif issue.kind is IssueKind.LOGICAL_INCONSISTENCY:
            if issue.field == "isCompleted":
                record.is_completed = False
                action = "clear_course_completion"
            else:
                # Se degrada el módulo: nunca se concede una compleción sin evidencia
                record.completed_modules = [mid for mid in record.completed_modules if mid not in issue.ids]
                if record.current_module in issue.ids:
                    record.current_module = None
                action = "downgrade_module"
        elif issue.kind is IssueKind.TEMPORAL_INCONSISTENCY:
            record.last_accessed = self.clock()
            action = "touch_last_accessed"
        else:
            return

        self._record_action(report, action, issue, before)

    def _record_action(
        self,
        report: RepairReport,
        action: str,
        issue: IntegrityIssue | None,
        before: dict[str, Any] | None,
    ) -> None:
        """Anotar una acción en el informe con el estado anterior."""
        after = report.record.to_dict()
        report.actions.append(RepairAction(action=action, issue=issue, before=before, after=after))
        logger.info(
            "Reparación %s [%s] %s: antes=%s después=%s",
            report.course_id,
            issue.kind.value if issue else "-",
            action,
            before,
            after,
        )

    def _reset(
        self,
        course: CourseDefinition,
        record: ProgressRecord | None,
        issues: list[IntegrityIssue],
        reason: str,
        actions: list[RepairAction] | None = None,
        remaining: list[IntegrityIssue] | None = None,
    ) -> RepairReport:
        """Reinicio completo del progreso de este curso (camino terminal)."""
        before = record.to_dict() if record is not None else None
        fresh = ProgressRecord.fresh(course.id, now=self.clock())
        if self.validator.validate(course, fresh):
            raise RuntimeError(f"El reinicio del progreso de {course.id} no produjo un registro válido")

        report = RepairReport(
            course_id=course.id,
            record=fresh,
            issues=list(issues),
            actions=list(actions or []),
            reset=True,
            remaining_issues=list(remaining or []),
        )
        logger.warning("Progreso de %s reiniciado (%s)", course.id, reason)
        self._record_action(report, "reset", issues[0] if issues else None, before)
        return report
