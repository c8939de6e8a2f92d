"""Tutor Progress - Motor de progreso, desbloqueo e integridad para cursos."""

__version__ = "0.1.0"

from .config import Config
from .engine import ProgressEngine

__all__ = ["Config", "ProgressEngine", "__version__"]
