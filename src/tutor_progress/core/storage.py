"""Almacenes clave-valor intercambiables para el blob de progreso."""

from __future__ import annotations

import os
import re
import tempfile
from pathlib import Path
from typing import Protocol


class StorageWriteError(OSError):
    """No se pudo escribir en el almacén."""

    pass


class StorageQuotaError(StorageWriteError):
    """El almacén superó su cuota de espacio."""

    pass


class KeyValueStore(Protocol):
    """Interfaz mínima de almacenamiento (navegador, archivo, base de datos...)."""

    def get(self, key: str) -> str | None:
        """Leer un valor o None si no existe."""
        ...

    def set(self, key: str, value: str) -> None:
        """Escribir un valor. Lanza StorageWriteError si falla."""
        ...

    def remove(self, key: str) -> None:
        """Eliminar una clave (sin error si no existe)."""
        ...

    def keys(self) -> list[str]:
        """Listar claves existentes."""
        ...


class MemoryKeyValueStore:
    """Almacén en memoria con cuota opcional (en caracteres), como localStorage."""

    def __init__(self, data: dict[str, str] | None = None, quota: int | None = None) -> None:
        """Inicializar con datos iniciales y cuota opcional."""
        self._data: dict[str, str] = dict(data or {})
        self.quota = quota

    def get(self, key: str) -> str | None:
        """Leer un valor o None si no existe."""
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        """Escribir un valor. Lanza StorageQuotaError si se supera la cuota."""
        if self.quota is not None:
            used = sum(len(k) + len(v) for k, v in self._data.items() if k != key)
            if used + len(key) + len(value) > self.quota:
                raise StorageQuotaError(
                    f"Cuota excedida al escribir '{key}' ({used + len(key) + len(value)} > {self.quota})"
                )
        self._data[key] = value

    def remove(self, key: str) -> None:
        """Eliminar una clave (sin error si no existe)."""
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        """Listar claves en orden de inserción."""
        return list(self._data)


class FileKeyValueStore:
    """Almacén en disco: un archivo por clave dentro de un directorio."""

    SUFFIX = ".json"

    def __init__(self, base_path: Path) -> None:
        """Inicializar con ruta base."""
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        """Ruta del archivo de una clave; rechaza claves con separadores."""
        if not re.fullmatch(r"[A-Za-z0-9_.-]+", key):
            raise ValueError(f"Clave no válida para el almacén en disco: {key!r}")
        return self.base_path / f"{key}{self.SUFFIX}"

    def get(self, key: str) -> str | None:
        """Leer el archivo de la clave o None si no existe."""
        path = self._path_for(key)
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return f.read()

    def set(self, key: str, value: str) -> None:
        """Reescribir la clave vía archivo temporal + os.replace."""
        path = self._path_for(key)
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.base_path, prefix=f".{key}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(value)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageWriteError(f"No se pudo escribir {path}: {e}") from e

    def remove(self, key: str) -> None:
        """Eliminar el archivo de la clave (sin error si no existe)."""
        self._path_for(key).unlink(missing_ok=True)

    def keys(self) -> list[str]:
        """Listar claves con archivo en disco, ignorando temporales."""
        if not self.base_path.exists():
            return []
        return sorted(
            item.name[: -len(self.SUFFIX)]
            for item in self.base_path.iterdir()
            if item.is_file() and item.name.endswith(self.SUFFIX) and not item.name.startswith(".")
        )
