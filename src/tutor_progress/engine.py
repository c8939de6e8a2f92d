"""Motor de progreso: API pública que consumen la UI y demás colaboradores.

Se construye una instancia explícita y se pasa a quien la necesite; no hay
estado global. Los eventos de la cascada se devuelven en cada
`CascadeResult` y, además, se entregan a los observadores registrados.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping

from .adaptive.advisor import Recommendation, RecommendationAdvisor
from .config import Config
from .core.catalog import CatalogMissingError, CourseCatalog, CourseDefinition, LessonRef, load_catalog
from .core.persistence import ProgressStore
from .core.state import ProgressRecord
from .core.storage import FileKeyValueStore
from .integrity.issues import IntegrityIssue
from .integrity.repair import RepairEngine, RepairReport
from .integrity.validator import IntegrityValidator
from .progression.cascade import CascadeResult, CompletionCascade, recommend_courses
from .progression.stats import ProgressStats, progress_stats
from .progression.unlock import AccessResult, UnlockEvaluator, UnlockRequirements

logger = logging.getLogger(__name__)

CascadeListener = Callable[[CascadeResult], None]


class ProgressEngine:
    """Orquesta catálogo, almacén, desbloqueo, cascada, integridad y recomendaciones."""

    def __init__(
        self,
        catalog: CourseCatalog,
        store: ProgressStore,
        *,
        evaluator: UnlockEvaluator | None = None,
        validator: IntegrityValidator | None = None,
        repair_engine: RepairEngine | None = None,
        advisor: RecommendationAdvisor | None = None,
    ) -> None:
        """Inicializar; los colaboradores no indicados se crean con sus valores por defecto."""
        self.catalog = catalog
        self.store = store
        self.evaluator = evaluator or UnlockEvaluator()
        self.validator = validator or IntegrityValidator()
        self.repair_engine = repair_engine or RepairEngine(self.validator, clock=store.clock)
        self.advisor = advisor or RecommendationAdvisor()
        self.cascade = CompletionCascade(store, catalog=catalog)

        self.current_course_id: str | None = None
        self.initialized = False
        self._listeners: list[CascadeListener] = []

    @classmethod
    def from_config(cls, config: Config, catalog: CourseCatalog | None = None) -> ProgressEngine:
        """Crear motor con almacén en disco según la configuración."""
        if catalog is None:
            if config.catalog_path is None:
                raise ValueError("Config sin catalog_path y sin catálogo explícito")
            catalog = load_catalog(config.catalog_path)

        config.ensure_dirs()
        store = ProgressStore(
            FileKeyValueStore(config.progress_dir),
            storage_key=config.storage_key,
            selected_course_key=config.selected_course_key,
            backup_limit=config.backup_limit,
        )
        return cls(catalog, store)

    # ------------------------------------------------------------------
    # Arranque
    # ------------------------------------------------------------------

    def initialize(self) -> list[RepairReport]:
        """Cargar progreso, validarlo y repararlo antes de entregarlo a nadie."""
        records = self.store.load()
        load_issues = list(self.store.load_issues)
        reports: list[RepairReport] = []

        for issue in load_issues:
            if issue.course_id is None:
                logger.warning("Progreso guardado ilegible; se empieza sin progreso: %s", issue.message)
            elif issue.course_id not in self.catalog:
                logger.warning("Progreso ilegible de un curso fuera del catálogo (%s); se descarta", issue.course_id)

        for course in self.catalog:
            record = records.get(course.id)
            issues = [issue for issue in load_issues if issue.course_id == course.id]
            if record is None and not issues:
                continue
            if record is not None:
                issues.extend(self.validator.validate(course, record))
            if not issues:
                continue
            report = self.repair_engine.repair(course, record, issues)
            self.store.records[course.id] = report.record
            reports.append(report)

        for course_id in records:
            if course_id not in self.catalog:
                logger.warning("Progreso de un curso fuera del catálogo, se conserva sin validar: %s", course_id)

        if reports or any(issue.course_id is None for issue in load_issues):
            self.store.save()

        selected = self.store.get_selected_course()
        if selected in self.catalog:
            self.current_course_id = selected

        self.initialized = True
        logger.info("Motor de progreso inicializado (%d reparaciones)", len(reports))
        return reports

    def _ensure_initialized(self) -> None:
        """Inicializar de forma perezosa en el primer uso."""
        if not self.initialized:
            self.initialize()

    def _course(self, course_id: str) -> CourseDefinition:
        """Curso del catálogo; lanza CatalogMissingError si no existe."""
        self._ensure_initialized()
        return self.catalog.require_course(course_id)

    # ------------------------------------------------------------------
    # Cursos y progreso
    # ------------------------------------------------------------------

    @property
    def current_course(self) -> CourseDefinition | None:
        """Curso seleccionado actualmente."""
        if self.current_course_id is None:
            return None
        return self.catalog.get_course(self.current_course_id)

    def select_course(self, course_id: str) -> CourseDefinition:
        """Seleccionar curso; crea su progreso si es la primera vez."""
        course = self._course(course_id)
        self.current_course_id = course_id
        self.store.save_selected_course(course_id)
        if self.store.get_record(course_id) is None:
            self.store.initialize_course_progress(course_id)
        logger.info("Curso seleccionado: %s", course.title)
        return course

    def get_course_progress(self, course_id: str) -> ProgressRecord | None:
        """Copia del progreso del curso (None si nunca se seleccionó)."""
        self._course(course_id)
        record = self.store.get_record(course_id)
        return record.copy() if record is not None else None

    def mark_lesson_completed(self, course_id: str, lesson_id: str, score: int = 0) -> CascadeResult:
        """Registrar una lección completada y propagar la compleción."""
        course = self._course(course_id)
        if course.find_module_for_lesson(lesson_id) is None:
            raise CatalogMissingError(f"Lección no encontrada en {course_id}: {lesson_id}")

        existing = self.store.get_record(course_id)
        newly_completed = existing is None or not existing.has_lesson(lesson_id)

        record = self.store.mark_lesson_completed(course_id, lesson_id, score)
        events = self.cascade.run(course, record, lesson_id if newly_completed else None)

        result = CascadeResult(
            course_id=course_id,
            lesson_id=lesson_id,
            score=score,
            events=events,
            save_status=self.store.last_status,
        )
        self._notify(result)
        return result

    def run_cascade(self, course_id: str) -> CascadeResult:
        """Volver a ejecutar la cascada sin nuevas compleciones."""
        course = self._course(course_id)
        record = self.store.get_record(course_id)
        if record is None:
            return CascadeResult(course_id=course_id, save_status=self.store.last_status)
        events = self.cascade.run(course, record)
        result = CascadeResult(course_id=course_id, events=events, save_status=self.store.last_status)
        if events:
            self._notify(result)
        return result

    def reset_progress(self, course_id: str | None = None) -> None:
        """Reiniciar el progreso de un curso o de todos."""
        if course_id is not None:
            self._course(course_id)
            self.store.remove_record(course_id)
            return
        self._ensure_initialized()
        self.store.reset_all()
        self.current_course_id = None

    def get_progress_stats(self, course_id: str) -> ProgressStats | None:
        """Estadísticas del progreso del curso."""
        self._course(course_id)
        record = self.store.get_record(course_id)
        return progress_stats(record) if record is not None else None

    # ------------------------------------------------------------------
    # Desbloqueo
    # ------------------------------------------------------------------

    def is_lesson_unlocked(self, course_id: str, lesson_id: str) -> bool:
        """Indica si la lección es accesible."""
        course = self._course(course_id)
        return self.evaluator.is_lesson_unlocked(course, lesson_id, self.store.get_record(course_id))

    def is_module_unlocked(self, course_id: str, module_id: str) -> bool:
        """Indica si los prerrequisitos del módulo están cumplidos."""
        course = self._course(course_id)
        return self.evaluator.is_module_unlocked(course, module_id, self.store.get_record(course_id))

    def get_next_lesson(self, course_id: str) -> LessonRef | None:
        """Primera lección desbloqueada y no completada."""
        course = self._course(course_id)
        return self.evaluator.get_next_lesson(course, self.store.get_record(course_id))

    def get_unlocked_lessons(self, course_id: str) -> list[tuple[LessonRef, bool]]:
        """Lecciones desbloqueadas con su estado de compleción."""
        course = self._course(course_id)
        return self.evaluator.get_unlocked_lessons(course, self.store.get_record(course_id))

    def get_unlock_requirements(self, course_id: str, lesson_id: str) -> UnlockRequirements | None:
        """Qué falta para desbloquear la lección."""
        course = self._course(course_id)
        return self.evaluator.get_unlock_requirements(course, lesson_id, self.store.get_record(course_id))

    def get_next_unlock_info(self, course_id: str) -> UnlockRequirements | None:
        """Requisitos de la primera lección bloqueada."""
        course = self._course(course_id)
        return self.evaluator.get_next_unlock_info(course, self.store.get_record(course_id))

    def attempt_lesson_access(self, course_id: str, lesson_id: str) -> AccessResult:
        """Intentar acceder a una lección (permitido o motivo del bloqueo)."""
        course = self._course(course_id)
        return self.evaluator.attempt_access(course, lesson_id, self.store.get_record(course_id))

    def get_course_unlock_status(self, course_id: str) -> dict:
        """Resumen del estado de desbloqueo por módulo."""
        course = self._course(course_id)
        return self.evaluator.get_course_unlock_status(course, self.store.get_record(course_id))

    # ------------------------------------------------------------------
    # Integridad
    # ------------------------------------------------------------------

    def validate_integrity(self, course_id: str) -> list[IntegrityIssue]:
        """Problemas actuales del progreso del curso (no modifica nada)."""
        course = self._course(course_id)
        record = self.store.get_record(course_id)
        if record is None:
            return []
        return self.validator.validate(course, record)

    def repair_course(self, course_id: str) -> RepairReport | None:
        """Validar y reparar el progreso del curso (None si no había nada que hacer)."""
        course = self._course(course_id)
        record = self.store.get_record(course_id)
        if record is None:
            return None
        issues = self.validator.validate(course, record)
        if not issues:
            return None
        report = self.repair_engine.repair(course, record, issues)
        self.store.replace_record(report.record)
        return report

    # ------------------------------------------------------------------
    # Recomendaciones
    # ------------------------------------------------------------------

    def recommend_next_step(
        self,
        course_id: str,
        signal: Mapping[str, float] | None = None,
        current_lesson: str | None = None,
    ) -> Recommendation:
        """Siguiente paso según la tasa de acierto suministrada."""
        course = self._course(course_id)
        record = self.store.get_record(course_id)
        next_lesson = self.evaluator.get_next_lesson(course, record)
        return self.advisor.recommend(record, signal, next_lesson=next_lesson, current_lesson=current_lesson)

    def recommend_courses(self, completed_course_id: str, limit: int = 3) -> list[CourseDefinition]:
        """Otros cursos no completados, en orden del catálogo."""
        self._course(completed_course_id)
        return recommend_courses(self.catalog, self.store, completed_course_id, limit)

    # ------------------------------------------------------------------
    # Observadores
    # ------------------------------------------------------------------

    def add_listener(self, listener: CascadeListener) -> None:
        """Registrar un observador de resultados de cascada."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: CascadeListener) -> None:
        """Quitar un observador registrado."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, result: CascadeResult) -> None:
        """Entregar el resultado a los observadores; sus errores se registran."""
        for listener in list(self._listeners):
            try:
                listener(result)
            except Exception:
                logger.exception("Error en observador de progreso %r", listener)
