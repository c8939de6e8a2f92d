"""Core: catálogo, estado, almacenamiento y persistencia."""

from .catalog import (
    CatalogError,
    CatalogMissingError,
    CourseCatalog,
    CourseDefinition,
    CourseMetadata,
    LessonRef,
    ModuleDefinition,
    load_catalog,
)
from .state import ProgressRecord
from .storage import FileKeyValueStore, KeyValueStore, MemoryKeyValueStore, StorageQuotaError, StorageWriteError
from .persistence import ProgressStore, SaveStatus

__all__ = [
    "CatalogError",
    "CatalogMissingError",
    "CourseCatalog",
    "CourseDefinition",
    "CourseMetadata",
    "LessonRef",
    "ModuleDefinition",
    "load_catalog",
    "ProgressRecord",
    "FileKeyValueStore",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "StorageQuotaError",
    "StorageWriteError",
    "ProgressStore",
    "SaveStatus",
]
