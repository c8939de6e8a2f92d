"""Fixtures compartidas."""

from datetime import UTC, datetime, timedelta

import pytest

from tutor_progress.core.catalog import CourseCatalog
from tutor_progress.core.persistence import ProgressStore
from tutor_progress.core.storage import MemoryKeyValueStore
from tutor_progress.engine import ProgressEngine


class FakeClock:
    """Reloj controlable para tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 3, 1, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def make_catalog_data() -> dict:
    """Catálogo con dos cursos; sql-basics es el del ejemplo de referencia."""
    return {
        "courses": [
            {
                "id": "sql-basics",
                "title": "SQL Basics",
                "metadata": {"difficulty": "beginner", "estimatedHours": 4},
                "modules": [
                    {"id": "module-1", "title": "Consultas", "lessons": ["L1", "L2"]},
                    {
                        "id": "module-2",
                        "title": "Filtros",
                        "lessons": ["L3"],
                        "prerequisites": ["module-1"],
                    },
                ],
            },
            {
                "id": "sql-joins",
                "title": "SQL Joins",
                "metadata": {"difficulty": "intermediate", "estimatedHours": 6},
                "modules": [
                    {"id": "inner", "title": "Inner join", "lessons": ["J1", "J2"]},
                    {"id": "outer", "title": "Outer join", "lessons": ["J3"], "prerequisites": ["inner"]},
                    {"id": "self", "title": "Self join", "lessons": ["J4"], "prerequisites": ["inner"]},
                    {
                        "id": "advanced",
                        "title": "Avanzado",
                        "lessons": ["J5", "J6"],
                        "prerequisites": ["outer", "self"],
                    },
                ],
            },
        ]
    }


@pytest.fixture
def catalog_data() -> dict:
    return make_catalog_data()


@pytest.fixture
def catalog(catalog_data: dict) -> CourseCatalog:
    return CourseCatalog.from_dict(catalog_data)


@pytest.fixture
def sql_basics(catalog: CourseCatalog):
    return catalog.require_course("sql-basics")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def store(backend: MemoryKeyValueStore, clock: FakeClock) -> ProgressStore:
    return ProgressStore(backend, clock=clock)


@pytest.fixture
def engine(catalog: CourseCatalog, store: ProgressStore) -> ProgressEngine:
    engine = ProgressEngine(catalog, store)
    engine.initialize()
    return engine
