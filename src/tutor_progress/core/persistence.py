"""Capa de persistencia del progreso por curso."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import datetime
from enum import Enum
from typing import Any

from ..integrity.issues import IntegrityIssue, IssueKind
from .state import ProgressRecord, utcnow
from .storage import KeyValueStore, StorageWriteError

logger = logging.getLogger(__name__)


class SaveStatus(Enum):
    """Resultado de una escritura del mapa de progreso."""

    SAVED = "saved"
    SAVED_AFTER_CLEANUP = "saved_after_cleanup"
    DEGRADED = "degraded"  # sesión solo en memoria


def migrate_progress_blob(data: Any) -> dict[str, Any]:
    """Convertir formatos antiguos del blob al mapa `courseId -> progreso`."""
    if not isinstance(data, dict):
        raise ValueError("El blob de progreso no es un objeto JSON")
    # Formato antiguo: {courseProgress: {...}, lastSaved, version}
    inner = data.get("courseProgress")
    if isinstance(inner, dict):
        return inner
    return data


class ProgressStore:
    """Dueño del mapa de progreso: carga, migración y reescritura completa."""

    STORAGE_KEY = "courseProgress"
    SELECTED_COURSE_KEY = "selectedCourse"

    def __init__(
        self,
        backend: KeyValueStore,
        *,
        storage_key: str | None = None,
        selected_course_key: str | None = None,
        backup_limit: int = 5,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Inicializar sobre un almacén clave-valor."""
        self.backend = backend
        self.storage_key = storage_key or self.STORAGE_KEY
        self.selected_course_key = selected_course_key or self.SELECTED_COURSE_KEY
        self.backup_limit = backup_limit
        self.clock = clock

        self.records: dict[str, ProgressRecord] = {}
        self.load_issues: list[IntegrityIssue] = []
        self.degraded = False
        self.last_status = SaveStatus.SAVED

    @property
    def backup_prefix(self) -> str:
        """Prefijo de las claves de respaldo."""
        return f"{self.storage_key}_backup_"

    # ------------------------------------------------------------------
    # Carga
    # ------------------------------------------------------------------

    def load(self) -> dict[str, ProgressRecord]:
        """Leer, parsear y migrar el blob persistido. Nunca lanza."""
        self.records = {}
        self.load_issues = []

        raw: str | None = None
        try:
            raw = self.backend.get(self.storage_key)
            if raw is None:
                return self.records
            entries = migrate_progress_blob(json.loads(raw))
        except (OSError, ValueError, RecursionError) as e:
            # ValueError cubre JSONDecodeError y UnicodeDecodeError
            logger.warning("Blob de progreso ilegible (%s); se continúa con progreso vacío", e)
            if raw is not None:
                self._backup_raw(raw)
            self.load_issues.append(
                IntegrityIssue(
                    kind=IssueKind.MALFORMED_INPUT,
                    course_id=None,
                    field=self.storage_key,
                    message=f"No se pudo leer el progreso guardado: {e}",
                )
            )
            return self.records

        now = self.clock()
        for course_id, data in entries.items():
            try:
                self.records[course_id] = ProgressRecord.from_dict(course_id, data, now=now)
            except (ValueError, TypeError, OverflowError) as e:
                logger.warning("Progreso de %s descartado por formato inválido: %s", course_id, e)
                self.load_issues.append(
                    IntegrityIssue(
                        kind=IssueKind.MALFORMED_INPUT,
                        course_id=course_id,
                        message=str(e),
                        details={"raw": data},
                    )
                )

        if any(issue.course_id is not None for issue in self.load_issues):
            self._backup_raw(raw)

        logger.debug("Progreso cargado: %d cursos", len(self.records))
        return self.records

    def _backup_raw(self, raw: str) -> None:
        """Guardar copia del blob corrupto bajo una clave de respaldo."""
        key = f"{self.backup_prefix}{int(self.clock().timestamp() * 1000):015d}"
        try:
            self.backend.set(key, raw)
            logger.info("Copia de respaldo del progreso corrupto: %s", key)
        except (StorageWriteError, OSError) as e:
            logger.warning("No se pudo crear la copia de respaldo %s: %s", key, e)

    # ------------------------------------------------------------------
    # Escritura
    # ------------------------------------------------------------------

    def save(self, course_id: str | None = None) -> SaveStatus:
        """Reescribir el mapa completo. Nunca lanza.

        Si la escritura falla se limpian respaldos antiguos y se reintenta una
        vez; si vuelve a fallar la sesión pasa a modo solo-memoria.
        """
        self.last_status = self._write(course_id)
        return self.last_status

    def _write(self, course_id: str | None) -> SaveStatus:
        """Escribir el mapa con un reintento tras limpiar respaldos."""
        if self.degraded:
            return SaveStatus.DEGRADED

        payload = json.dumps(
            {cid: record.to_dict() for cid, record in self.records.items()},
            ensure_ascii=False,
        )
        try:
            self.backend.set(self.storage_key, payload)
            return SaveStatus.SAVED
        except (StorageWriteError, OSError) as e:
            logger.warning("Error guardando progreso (%s): %s; limpiando respaldos", course_id or "*", e)

        try:
            self.cleanup_backups()
            self.backend.set(self.storage_key, payload)
            return SaveStatus.SAVED_AFTER_CLEANUP
        except (StorageWriteError, OSError) as e:
            self.degraded = True
            logger.warning(
                "%s: el progreso no se puede persistir (%s); la sesión continúa solo en memoria",
                IssueKind.STORAGE_WRITE_FAILURE.value,
                e,
            )
            return SaveStatus.DEGRADED

    def backup_keys(self) -> list[str]:
        """Claves de respaldo existentes, de la más antigua a la más reciente."""
        return sorted(key for key in self.backend.keys() if key.startswith(self.backup_prefix))

    def cleanup_backups(self, keep: int | None = None) -> list[str]:
        """Eliminar respaldos antiguos conservando los `keep` más recientes."""
        keep = self.backup_limit if keep is None else keep
        keys = self.backup_keys()
        stale = keys[: max(len(keys) - keep, 0)]
        for key in stale:
            self.backend.remove(key)
        if stale:
            logger.info("Eliminados %d respaldos antiguos", len(stale))
        return stale

    # ------------------------------------------------------------------
    # Registros
    # ------------------------------------------------------------------

    def get_record(self, course_id: str) -> ProgressRecord | None:
        """Obtener el registro de un curso."""
        return self.records.get(course_id)

    def all_records(self) -> dict[str, ProgressRecord]:
        """Copia superficial del mapa de progreso."""
        return dict(self.records)

    def _require_record(self, course_id: str) -> ProgressRecord:
        """Obtener el registro o lanzar KeyError si no existe."""
        record = self.records.get(course_id)
        if record is None:
            raise KeyError(f"No hay progreso para el curso {course_id}")
        return record

    def initialize_course_progress(self, course_id: str) -> ProgressRecord:
        """Crear progreso vacío para un curso."""
        record = ProgressRecord.fresh(course_id, now=self.clock())
        self.records[course_id] = record
        self.save(course_id)
        logger.info("Progreso inicializado: %s", course_id)
        return record

    def mark_lesson_completed(self, course_id: str, lesson_id: str, score: int = 0) -> ProgressRecord:
        """Registrar lección completada.

        Añadir la lección es idempotente, pero la puntuación se suma en cada
        llamada, también cuando la lección ya estaba completada.
        """
        if isinstance(score, bool) or not isinstance(score, int) or score < 0:
            raise ValueError(f"La puntuación debe ser un entero >= 0: {score!r}")

        record = self.records.get(course_id)
        if record is None:
            record = self.initialize_course_progress(course_id)

        record.add_lesson(lesson_id)
        record.current_lesson = lesson_id
        record.total_score += score
        record.touch(self.clock())

        self.save(course_id)
        logger.debug("Lección completada: %s - %s (+%d)", course_id, lesson_id, score)
        return record

    def mark_module_completed(self, course_id: str, module_id: str) -> ProgressRecord:
        """Registrar módulo completado (idempotente)."""
        record = self._require_record(course_id)
        record.add_module(module_id)
        record.current_module = module_id
        record.touch(self.clock())

        self.save(course_id)
        logger.debug("Módulo completado: %s - %s", course_id, module_id)
        return record

    def mark_course_completed(self, course_id: str) -> ProgressRecord:
        """Registrar curso completado (idempotente)."""
        record = self._require_record(course_id)
        record.is_completed = True
        record.touch(self.clock())

        self.save(course_id)
        logger.debug("Curso completado: %s", course_id)
        return record

    def replace_record(self, record: ProgressRecord) -> SaveStatus:
        """Sustituir el registro de un curso (usado tras una reparación)."""
        self.records[record.course_id] = record
        return self.save(record.course_id)

    def remove_record(self, course_id: str) -> SaveStatus:
        """Eliminar el progreso de un curso."""
        self.records.pop(course_id, None)
        status = self.save(course_id)
        logger.info("Progreso eliminado: %s", course_id)
        return status

    def reset_all(self) -> None:
        """Eliminar todo el progreso y la selección de curso."""
        self.records = {}
        if self.degraded:
            return
        try:
            self.backend.remove(self.storage_key)
            self.backend.remove(self.selected_course_key)
        except OSError as e:
            logger.warning("Error eliminando progreso persistido: %s", e)
        logger.info("Todo el progreso ha sido eliminado")

    # ------------------------------------------------------------------
    # Curso seleccionado
    # ------------------------------------------------------------------

    def save_selected_course(self, course_id: str) -> None:
        """Guardar curso seleccionado."""
        if self.degraded:
            return
        try:
            self.backend.set(self.selected_course_key, course_id)
        except (StorageWriteError, OSError) as e:
            logger.warning("Error guardando curso seleccionado: %s", e)

    def get_selected_course(self) -> str | None:
        """Obtener curso seleccionado (None si no hay o no se puede leer)."""
        try:
            return self.backend.get(self.selected_course_key)
        except (OSError, ValueError) as e:
            logger.warning("Curso seleccionado ilegible: %s", e)
            return None
