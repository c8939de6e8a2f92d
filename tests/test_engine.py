"""Tests para el motor de progreso."""

import inspect
import itertools
import json
import tempfile
from pathlib import Path

import pytest

from tutor_progress.config import Config
from tutor_progress.core.catalog import CatalogMissingError, CourseCatalog
from tutor_progress.core.persistence import ProgressStore, SaveStatus
from tutor_progress.core.storage import FileKeyValueStore, MemoryKeyValueStore
from tutor_progress.engine import ProgressEngine
from tutor_progress.integrity.issues import IssueKind
from tutor_progress.progression.cascade import CascadeResult


def _engine_with_blob(catalog: CourseCatalog, blob: object, clock) -> tuple[ProgressEngine, MemoryKeyValueStore]:
    backend = MemoryKeyValueStore()
    backend.set("courseProgress", blob if isinstance(blob, str) else json.dumps(blob))
    engine = ProgressEngine(catalog, ProgressStore(backend, clock=clock))
    return engine, backend


class TestProgression:
    """Tests del recorrido de un curso."""

    def test_walkthrough(self, engine: ProgressEngine) -> None:
        """Test recorrido completo de sql-basics."""
        engine.select_course("sql-basics")

        assert engine.is_lesson_unlocked("sql-basics", "L1")
        assert not engine.is_lesson_unlocked("sql-basics", "L2")
        assert not engine.is_lesson_unlocked("sql-basics", "L3")

        result = engine.mark_lesson_completed("sql-basics", "L1", 10)
        assert result.unlocked_lessons == ["L2"]
        assert result.completed_modules == []
        assert engine.is_lesson_unlocked("sql-basics", "L2")

        result = engine.mark_lesson_completed("sql-basics", "L2", 10)
        assert result.completed_modules == ["module-1"]
        assert result.unlocked_modules == ["module-2"]
        assert "module-1" in engine.get_course_progress("sql-basics").completed_modules
        assert engine.get_next_lesson("sql-basics").lesson_id == "L3"

        result = engine.mark_lesson_completed("sql-basics", "L3", 10)
        assert result.course_completed
        assert result.save_status is SaveStatus.SAVED
        assert engine.get_next_lesson("sql-basics") is None

    def test_repeated_lesson_adds_score(self, engine: ProgressEngine) -> None:
        """Test repetir lección suma puntuación sin eventos."""
        engine.mark_lesson_completed("sql-basics", "L1", 10)
        result = engine.mark_lesson_completed("sql-basics", "L1", 10)

        progress = engine.get_course_progress("sql-basics")
        assert result.events == []
        assert progress.completed_lessons == ["L1"]
        assert progress.total_score == 20

    def test_course_completed_only_once(self, engine: ProgressEngine) -> None:
        """Test CourseCompleted una única vez en toda la secuencia."""
        results = [engine.mark_lesson_completed("sql-basics", lid) for lid in ["L1", "L2", "L3", "L3"]]
        results.append(engine.run_cascade("sql-basics"))

        assert sum(result.course_completed for result in results) == 1

    def test_unknown_course_and_lesson(self, engine: ProgressEngine) -> None:
        """Test ids fuera del catálogo."""
        with pytest.raises(CatalogMissingError):
            engine.mark_lesson_completed("nope", "L1")
        with pytest.raises(CatalogMissingError):
            engine.mark_lesson_completed("sql-basics", "L99")
        with pytest.raises(CatalogMissingError):
            engine.is_lesson_unlocked("nope", "L1")

    def test_progress_is_a_copy(self, engine: ProgressEngine) -> None:
        """Test el progreso devuelto no modifica el almacén."""
        engine.select_course("sql-basics")
        progress = engine.get_course_progress("sql-basics")
        progress.completed_lessons.append("L1")

        assert engine.get_course_progress("sql-basics").completed_lessons == []

    def test_attempt_lesson_access(self, engine: ProgressEngine) -> None:
        """Test control de acceso."""
        engine.select_course("sql-basics")

        assert engine.attempt_lesson_access("sql-basics", "L1").allowed
        denied = engine.attempt_lesson_access("sql-basics", "L3")
        assert denied.reason == "prerequisites_incomplete"
        assert engine.get_unlock_requirements("sql-basics", "L3").missing_prerequisites == ["module-1"]

    def test_stats_and_recommendations(self, engine: ProgressEngine) -> None:
        """Test estadísticas y recomendaciones."""
        engine.mark_lesson_completed("sql-basics", "L1", 7)

        assert engine.get_progress_stats("sql-basics").total_score == 7
        assert engine.get_progress_stats("sql-joins") is None

        rec = engine.recommend_next_step("sql-basics", {"select": 0.95})
        assert rec.kind == "advance"
        assert rec.lesson_id == "L2"

    def test_recommend_courses(self, engine: ProgressEngine) -> None:
        """Test cursos recomendados tras completar uno."""
        for lesson_id in ["L1", "L2", "L3"]:
            engine.mark_lesson_completed("sql-basics", lesson_id)

        assert [course.id for course in engine.recommend_courses("sql-basics")] == ["sql-joins"]


class TestSelectionAndReset:
    """Tests de selección de curso y reinicio."""

    def test_select_course_persists(self, catalog: CourseCatalog, store: ProgressStore, clock) -> None:
        """Test la selección se recupera en una nueva instancia."""
        engine = ProgressEngine(catalog, store)
        engine.select_course("sql-joins")

        other = ProgressEngine(catalog, ProgressStore(store.backend, clock=clock))
        other.initialize()

        assert other.current_course_id == "sql-joins"
        assert other.get_course_progress("sql-joins") is not None

    def test_reset_single_course(self, engine: ProgressEngine) -> None:
        """Test reinicio de un curso."""
        engine.mark_lesson_completed("sql-basics", "L1")
        engine.mark_lesson_completed("sql-joins", "J1")

        engine.reset_progress("sql-basics")

        assert engine.get_course_progress("sql-basics") is None
        assert engine.get_course_progress("sql-joins").completed_lessons == ["J1"]

    def test_reset_all(self, engine: ProgressEngine) -> None:
        """Test reinicio completo."""
        engine.select_course("sql-basics")
        engine.mark_lesson_completed("sql-basics", "L1")

        engine.reset_progress()

        assert engine.current_course_id is None
        assert engine.get_course_progress("sql-basics") is None
        assert not engine.is_lesson_unlocked("sql-basics", "L1")


class TestLoadRepair:
    """Tests de validación y reparación al arrancar."""

    def test_invalid_reference_repaired_on_load(self, catalog: CourseCatalog, clock) -> None:
        """Test lección inexistente eliminada al cargar."""
        engine, backend = _engine_with_blob(catalog, {"sql-basics": {"completedLessons": ["L99"]}}, clock)

        reports = engine.initialize()

        assert reports[0].issues[0].kind is IssueKind.INVALID_REFERENCE
        assert engine.get_course_progress("sql-basics").completed_lessons == []
        assert json.loads(backend.get("courseProgress"))["sql-basics"]["completedLessons"] == []

    def test_logical_inconsistency_repaired_on_load(self, catalog: CourseCatalog, clock) -> None:
        """Test módulo completado sin lecciones degradado al cargar."""
        engine, _ = _engine_with_blob(
            catalog, {"sql-basics": {"completedModules": ["module-1"], "completedLessons": []}}, clock
        )

        engine.initialize()

        assert engine.get_course_progress("sql-basics").completed_modules == []
        assert engine.validate_integrity("sql-basics") == []

    def test_corrupt_blob_starts_empty(self, catalog: CourseCatalog, clock) -> None:
        """Test blob corrupto: se arranca sin progreso y se guarda respaldo."""
        engine, backend = _engine_with_blob(catalog, "{{{", clock)

        engine.initialize()

        assert engine.get_course_progress("sql-basics") is None
        assert engine.store.backup_keys()
        assert json.loads(backend.get("courseProgress")) == {}

    def test_malformed_course_is_reset(self, catalog: CourseCatalog, clock) -> None:
        """Test curso con tipos inválidos se reinicia."""
        engine, _ = _engine_with_blob(
            catalog,
            {
                "sql-basics": {"completedLessons": "L1"},
                "sql-joins": {"completedLessons": ["J1"]},
            },
            clock,
        )

        reports = engine.initialize()

        assert [report.course_id for report in reports] == ["sql-basics"]
        assert reports[0].reset
        assert engine.get_course_progress("sql-basics").completed_lessons == []
        assert engine.get_course_progress("sql-joins").completed_lessons == ["J1"]

    def test_undecodable_files_start_empty(self, catalog: CourseCatalog, clock) -> None:
        """Test archivos con bytes no UTF-8: se arranca sin progreso."""
        with tempfile.TemporaryDirectory() as tmpdir:
            (Path(tmpdir) / "courseProgress.json").write_bytes(b'{"sql-basics": \xff\xfe}')
            (Path(tmpdir) / "selectedCourse.json").write_bytes(b"\xff\xfe")
            engine = ProgressEngine(catalog, ProgressStore(FileKeyValueStore(Path(tmpdir)), clock=clock))

            engine.initialize()

            assert engine.current_course_id is None
            assert engine.get_course_progress("sql-basics") is None
            assert json.loads((Path(tmpdir) / "courseProgress.json").read_text(encoding="utf-8")) == {}

    def test_unknown_course_kept(self, catalog: CourseCatalog, clock) -> None:
        """Test progreso de un curso fuera del catálogo se conserva."""
        engine, _ = _engine_with_blob(catalog, {"retired": {"completedLessons": ["X"]}}, clock)

        engine.initialize()

        assert engine.store.get_record("retired").completed_lessons == ["X"]

    def test_repair_course(self, engine: ProgressEngine) -> None:
        """Test reparación bajo demanda."""
        engine.mark_lesson_completed("sql-basics", "L1")
        engine.store.get_record("sql-basics").completed_lessons.append("L99")

        report = engine.repair_course("sql-basics")

        assert report.record.completed_lessons == ["L1"]
        assert engine.repair_course("sql-basics") is None


class TestDegradedAndListeners:
    """Tests de modo degradado y observadores."""

    def test_degraded_result(self, catalog: CourseCatalog, clock) -> None:
        """Test la sesión sigue en memoria si no se puede escribir."""
        engine = ProgressEngine(catalog, ProgressStore(MemoryKeyValueStore(quota=30), clock=clock))
        engine.initialize()

        result = engine.mark_lesson_completed("sql-basics", "L1", 4)

        assert result.degraded
        assert engine.get_course_progress("sql-basics").total_score == 4
        assert engine.is_lesson_unlocked("sql-basics", "L2")

    def test_listeners(self, engine: ProgressEngine) -> None:
        """Test notificación a observadores."""
        received: list[CascadeResult] = []

        def broken(result: CascadeResult) -> None:
            raise RuntimeError("fallo del observador")

        engine.add_listener(broken)
        engine.add_listener(received.append)
        engine.mark_lesson_completed("sql-basics", "L1")
        engine.remove_listener(received.append)
        engine.mark_lesson_completed("sql-basics", "L2")

        assert len(received) == 1
        assert received[0].lesson_id == "L1"


class TestFromConfig:
    """Tests de construcción desde configuración."""

    def test_file_backed_engine(self, catalog_data: dict) -> None:
        """Test motor con almacén en disco."""
        with tempfile.TemporaryDirectory() as tmpdir:
            catalog_path = Path(tmpdir) / "catalog.json"
            catalog_path.write_text(json.dumps(catalog_data), encoding="utf-8")
            config = Config(data_dir=Path(tmpdir) / "data", catalog_path=catalog_path)

            engine = ProgressEngine.from_config(config)
            engine.mark_lesson_completed("sql-basics", "L1", 3)

            reloaded = ProgressEngine.from_config(config)
            assert reloaded.get_course_progress("sql-basics").total_score == 3
            assert (config.progress_dir / "courseProgress.json").exists()

    def test_missing_catalog_path(self) -> None:
        """Test configuración sin catálogo."""
        with pytest.raises(ValueError):
            ProgressEngine.from_config(Config(data_dir=Path("/tmp/tp")))


class TestPackage:
    """Tests de la API exportada por el paquete."""

    def test_package_exports(self) -> None:
        """Test importación del paquete y sus subpaquetes."""
        import tutor_progress
        from tutor_progress import adaptive, core, integrity, progression

        assert tutor_progress.ProgressEngine is ProgressEngine
        assert tutor_progress.Config is Config
        assert core.ProgressStore is ProgressStore
        assert integrity.IssueKind is IssueKind
        assert progression.CascadeResult is CascadeResult
        assert adaptive.RecommendationAdvisor.__name__ == "RecommendationAdvisor"
        for module in (core, integrity, progression, adaptive):
            assert all(hasattr(module, name) for name in module.__all__)

    def test_public_api_documented(self) -> None:
        """Test docstrings en funciones y métodos públicos exportados."""
        import tutor_progress
        from tutor_progress import adaptive, core, integrity, progression

        undocumented = []
        for module in (tutor_progress, core, integrity, progression, adaptive):
            for name in module.__all__:
                obj = getattr(module, name)
                if inspect.isfunction(obj) and not obj.__doc__:
                    undocumented.append(name)
                if not inspect.isclass(obj):
                    continue
                for attr, value in vars(obj).items():
                    if isinstance(value, (classmethod, staticmethod)):
                        value = value.__func__
                    elif isinstance(value, property):
                        value = value.fget
                    if attr.startswith("_") or not inspect.isfunction(value):
                        continue
                    if value.__module__.startswith("tutor_progress") and not value.__doc__:
                        undocumented.append(f"{name}.{attr}")

        assert undocumented == []


def _assert_completed_modules_backed_by_lessons(engine: ProgressEngine, course_id: str) -> None:
    course = engine.catalog.require_course(course_id)
    progress = engine.get_course_progress(course_id)
    for module_id in progress.completed_modules:
        module = course.get_module(module_id)
        assert module is not None
        assert set(module.lessons) <= set(progress.completed_lessons)


class TestInvariants:
    """Tests de propiedades que se cumplen tras cualquier secuencia de operaciones."""

    def test_completed_modules_always_backed_by_lessons(self, catalog: CourseCatalog, clock) -> None:
        """Test todo módulo completado tiene todas sus lecciones, en cualquier orden de compleción."""
        course = catalog.require_course("sql-joins")

        for order in itertools.permutations(course.lesson_ids()):
            engine = ProgressEngine(catalog, ProgressStore(MemoryKeyValueStore(), clock=clock))
            engine.initialize()

            for step, lesson_id in enumerate(order):
                engine.mark_lesson_completed("sql-joins", lesson_id, 1)
                _assert_completed_modules_backed_by_lessons(engine, "sql-joins")

                if step == 2:
                    # Edición externa: todos los módulos marcados como completados
                    record = engine.store.get_record("sql-joins")
                    for module_id in course.module_ids():
                        record.add_module(module_id)
                    engine.repair_course("sql-joins")
                    _assert_completed_modules_backed_by_lessons(engine, "sql-joins")

            progress = engine.get_course_progress("sql-joins")
            assert set(progress.completed_modules) == set(course.module_ids())
            assert progress.is_completed
