"""Configuración del motor de progreso."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from platformdirs import user_data_dir


@dataclass(frozen=True)
class Config:
    """Configuración inmutable del motor."""

    # Paths
    data_dir: Path = Path(user_data_dir("tutor-progress", "tutor-progress"))
    progress_dir: Path = field(init=False)
    catalog_path: Path | None = None

    # Almacenamiento
    storage_key: str = "courseProgress"
    selected_course_key: str = "selectedCourse"
    backup_limit: int = 5  # copias de respaldo que se conservan

    def __post_init__(self) -> None:
        """Derivar el directorio de progreso a partir de data_dir."""
        object.__setattr__(
            self, "progress_dir", self.data_dir / "progress"
        )

    @classmethod
    def from_env(cls) -> Config:
        """Crear configuración desde variables de entorno."""
        data_dir = os.getenv("TUTOR_PROGRESS_DATA_DIR")
        catalog = os.getenv("TUTOR_PROGRESS_CATALOG")

        return cls(
            data_dir=Path(data_dir) if data_dir else Path(user_data_dir("tutor-progress", "tutor-progress")),
            catalog_path=Path(catalog) if catalog else None,
            storage_key=os.getenv("TUTOR_PROGRESS_STORAGE_KEY", "courseProgress"),
            backup_limit=int(os.getenv("TUTOR_PROGRESS_BACKUP_LIMIT", "5")),
        )

    def ensure_dirs(self) -> None:
        """Crear directorios necesarios si no existen."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.progress_dir.mkdir(parents=True, exist_ok=True)
