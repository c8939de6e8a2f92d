"""Catálogo de cursos: definición estructural de cursos, módulos y lecciones."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


class CatalogError(ValueError):
    """Catálogo con estructura inválida."""

    pass


class CatalogMissingError(KeyError):
    """Operación sobre un curso (o lección) que no existe en el catálogo."""

    def __str__(self) -> str:
        """Mensaje sin las comillas que añade KeyError."""
        return str(self.args[0]) if self.args else "Elemento no encontrado en el catálogo"


@dataclass(frozen=True)
class LessonRef:
    """Referencia a una lección dentro de su módulo."""

    lesson_id: str
    module_id: str
    module_title: str

    def to_dict(self) -> dict[str, Any]:
        """Convertir a diccionario."""
        return {
            "lessonId": self.lesson_id,
            "moduleId": self.module_id,
            "moduleTitle": self.module_title,
        }


@dataclass(frozen=True)
class ModuleDefinition:
    """Un módulo: grupo de lecciones ordenadas con prerrequisitos."""

    id: str
    title: str
    lessons: tuple[str, ...]
    prerequisites: tuple[str, ...] = ()
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convertir a diccionario."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "lessons": list(self.lessons),
            "prerequisites": list(self.prerequisites),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ModuleDefinition:
        """Crear desde diccionario."""
        for key in ("lessons", "prerequisites"):
            if not isinstance(data.get(key, []), list):
                raise TypeError(f"'{key}' debe ser una lista (módulo {data.get('id')})")
        return cls(
            id=str(data["id"]),
            title=str(data.get("title", data["id"])),
            lessons=tuple(str(lesson) for lesson in data.get("lessons", [])),
            prerequisites=tuple(str(prereq) for prereq in data.get("prerequisites", [])),
            description=str(data.get("description", "")),
        )

    @property
    def first_lesson(self) -> str | None:
        """Primera lección del módulo (punto de acceso)."""
        return self.lessons[0] if self.lessons else None

    def previous_lesson(self, lesson_id: str) -> str | None:
        """Lección anterior en el orden del módulo, o None si es la primera."""
        index = self.lessons.index(lesson_id)
        return self.lessons[index - 1] if index > 0 else None

    def next_lesson(self, lesson_id: str) -> str | None:
        """Lección siguiente en el orden del módulo."""
        index = self.lessons.index(lesson_id)
        if index + 1 < len(self.lessons):
            return self.lessons[index + 1]
        return None


@dataclass(frozen=True)
class CourseMetadata:
    """Metadata del curso."""

    description: str = ""
    difficulty: str = "beginner"  # beginner, intermediate, advanced
    estimated_hours: float = 0.0
    target_audience: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convertir a diccionario."""
        return {
            "description": self.description,
            "difficulty": self.difficulty,
            "estimatedHours": self.estimated_hours,
            "targetAudience": self.target_audience,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CourseMetadata:
        """Crear desde diccionario."""
        return cls(
            description=str(data.get("description", "")),
            difficulty=str(data.get("difficulty", "beginner")),
            estimated_hours=float(data.get("estimatedHours", 0) or 0),
            target_audience=str(data.get("targetAudience", "")),
        )


@dataclass(frozen=True)
class CourseDefinition:
    """Curso completo: módulos en orden declarado."""

    id: str
    title: str
    modules: tuple[ModuleDefinition, ...] = ()
    metadata: CourseMetadata = field(default_factory=CourseMetadata)

    def to_dict(self) -> dict[str, Any]:
        """Convertir a diccionario."""
        return {
            "id": self.id,
            "title": self.title,
            **self.metadata.to_dict(),
            "modules": [module.to_dict() for module in self.modules],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CourseDefinition:
        """Crear desde diccionario."""
        modules = tuple(ModuleDefinition.from_dict(module) for module in data.get("modules", []))
        return cls(
            id=str(data["id"]),
            title=str(data.get("title", data["id"])),
            modules=modules,
            metadata=CourseMetadata.from_dict(data.get("metadata") or data),
        )

    def get_module(self, module_id: str) -> ModuleDefinition | None:
        """Obtener módulo por id."""
        for module in self.modules:
            if module.id == module_id:
                return module
        return None

    def find_module_for_lesson(self, lesson_id: str) -> ModuleDefinition | None:
        """Obtener el módulo al que pertenece una lección."""
        for module in self.modules:
            if lesson_id in module.lessons:
                return module
        return None

    def module_ids(self) -> list[str]:
        """Ids de módulos en orden declarado."""
        return [module.id for module in self.modules]

    def lesson_ids(self) -> list[str]:
        """Ids de todas las lecciones en orden declarado."""
        return [lesson for module in self.modules for lesson in module.lessons]

    def iter_lessons(self) -> Iterator[LessonRef]:
        """Recorrer lecciones en el orden del catálogo."""
        for module in self.modules:
            for lesson_id in module.lessons:
                yield LessonRef(lesson_id=lesson_id, module_id=module.id, module_title=module.title)

    @property
    def total_lessons(self) -> int:
        """Número total de lecciones del curso."""
        return sum(len(module.lessons) for module in self.modules)


class CourseCatalog:
    """Catálogo inmutable de cursos, cargado una vez al arrancar."""

    def __init__(self, courses: list[CourseDefinition] | tuple[CourseDefinition, ...]) -> None:
        """Inicializar y validar el catálogo."""
        self._courses: tuple[CourseDefinition, ...] = tuple(courses)
        self._by_id: dict[str, CourseDefinition] = {}
        for course in self._courses:
            if course.id in self._by_id:
                raise CatalogError(f"Curso duplicado en el catálogo: {course.id}")
            self._by_id[course.id] = course
        for course in self._courses:
            validate_course(course)

    @property
    def courses(self) -> tuple[CourseDefinition, ...]:
        """Cursos en el orden del catálogo."""
        return self._courses

    def __contains__(self, course_id: object) -> bool:
        """Indica si el id corresponde a un curso del catálogo."""
        return course_id in self._by_id

    def __iter__(self) -> Iterator[CourseDefinition]:
        """Recorrer cursos en el orden del catálogo."""
        return iter(self._courses)

    def __len__(self) -> int:
        """Número de cursos."""
        return len(self._courses)

    def get_course(self, course_id: str) -> CourseDefinition | None:
        """Obtener curso por id."""
        return self._by_id.get(course_id)

    def require_course(self, course_id: str) -> CourseDefinition:
        """Obtener curso o lanzar CatalogMissingError."""
        course = self._by_id.get(course_id)
        if course is None:
            raise CatalogMissingError(f"Curso no encontrado en el catálogo: {course_id}")
        return course

    def to_dict(self) -> dict[str, Any]:
        """Convertir a diccionario."""
        return {"courses": [course.to_dict() for course in self._courses]}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CourseCatalog:
        """Crear desde diccionario con la forma `{courses: [...]}`."""
        raw_courses = data.get("courses") if isinstance(data, Mapping) else None
        if not isinstance(raw_courses, list):
            raise CatalogError("El catálogo debe contener una lista 'courses'")
        try:
            courses = [CourseDefinition.from_dict(raw) for raw in raw_courses]
        except (KeyError, TypeError, AttributeError) as e:
            raise CatalogError(f"Definición de curso inválida: {e}") from e
        return cls(courses)


def load_catalog(source: Path | str | Mapping[str, Any]) -> CourseCatalog:
    """Cargar catálogo desde archivo JSON/YAML o desde un diccionario ya parseado."""
    if isinstance(source, Mapping):
        catalog = CourseCatalog.from_dict(source)
    else:
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Catalog file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            try:
                if path.suffix.lower() in (".yaml", ".yml"):
                    data = yaml.safe_load(f)
                else:
                    data = json.load(f)
            except (json.JSONDecodeError, yaml.YAMLError) as e:
                raise CatalogError(f"Catálogo ilegible ({path.name}): {e}") from e

        catalog = CourseCatalog.from_dict(data or {})

    logger.info("Catálogo cargado: %d cursos", len(catalog))
    return catalog


def validate_course(course: CourseDefinition) -> None:
    """Validar estructura de un curso. Lanza CatalogError."""
    module_ids: set[str] = set()
    lesson_owner: dict[str, str] = {}

    for module in course.modules:
        if module.id in module_ids:
            raise CatalogError(f"{course.id}: módulo duplicado {module.id}")
        module_ids.add(module.id)

        if not module.lessons:
            raise CatalogError(f"{course.id}: el módulo {module.id} no tiene lecciones")

        for lesson_id in module.lessons:
            if lesson_id in lesson_owner:
                raise CatalogError(
                    f"{course.id}: la lección {lesson_id} aparece en "
                    f"{lesson_owner[lesson_id]} y en {module.id}"
                )
            lesson_owner[lesson_id] = module.id

    for module in course.modules:
        for prereq in module.prerequisites:
            if prereq == module.id:
                raise CatalogError(f"{course.id}: el módulo {module.id} es prerrequisito de sí mismo")
            if prereq not in module_ids:
                raise CatalogError(
                    f"{course.id}: el módulo {module.id} requiere un módulo inexistente {prereq}"
                )

    topological_order(course)


def topological_order(course: CourseDefinition) -> list[str]:
    """Ordenar módulos por prerrequisitos (Kahn). Lanza CatalogError si hay ciclo."""
    dependents: dict[str, list[str]] = {module.id: [] for module in course.modules}
    indegree: dict[str, int] = {module.id: 0 for module in course.modules}

    for module in course.modules:
        for prereq in set(module.prerequisites):
            dependents[prereq].append(module.id)
            indegree[module.id] += 1

    # Cola en orden declarado para que el resultado sea determinista
    ready = [module_id for module_id in indegree if indegree[module_id] == 0]
    ordered: list[str] = []
    while ready:
        module_id = ready.pop(0)
        ordered.append(module_id)
        for dependent in dependents[module_id]:
            indegree[dependent] -= 1
            if indegree[dependent] == 0:
                ready.append(dependent)

    if len(ordered) != len(indegree):
        unresolved = sorted(module_id for module_id, degree in indegree.items() if degree > 0)
        raise CatalogError(
            f"{course.id}: ciclo de prerrequisitos entre módulos: {', '.join(unresolved)}"
        )
    return ordered
