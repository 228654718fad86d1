import logging
import os
import shutil
from abc import ABC, abstractmethod
from urllib.parse import quote

from modules.common.errors import BlobExistsError, BlobNotFoundError, StorageError

logger = logging.getLogger(__name__)


class BlobStore(ABC):
    """
    Almacenamiento de objetos direccionado por path dentro de un bucket.
    """

    @abstractmethod
    def upload(self, path: str, data: bytes, content_type: str = "application/pdf",
               upsert: bool = False) -> str: ...

    @abstractmethod
    def download(self, path: str) -> bytes: ...

    @abstractmethod
    def move(self, src: str, dst: str) -> str: ...

    @abstractmethod
    def remove(self, paths: list[str]) -> list[str]: ...

    @abstractmethod
    def exists(self, path: str) -> bool: ...

    @abstractmethod
    def size(self, path: str) -> int: ...

    @abstractmethod
    def append(self, path: str, data: bytes) -> int: ...

    @abstractmethod
    def list(self, prefix: str) -> list[str]: ...

    @abstractmethod
    def public_url(self, path: str) -> str: ...


class LocalBlobStore(BlobStore):
    """BlobStore sobre un directorio local, un subdirectorio por bucket."""

    def __init__(self, root: str, bucket: str, public_base_url: str):
        self.bucket = bucket
        self.base_dir = os.path.abspath(os.path.join(root, bucket))
        self.public_base_url = public_base_url.rstrip("/")
        os.makedirs(self.base_dir, exist_ok=True)

    def _full_path(self, path: str) -> str:
        if not path or path.startswith("/"):
            raise StorageError(f"Path inválido: {path!r}")
        full = os.path.abspath(os.path.join(self.base_dir, path))
        if os.path.commonpath([full, self.base_dir]) != self.base_dir or full == self.base_dir:
            raise StorageError(f"Path fuera del bucket: {path!r}")
        return full

    def upload(self, path, data, content_type="application/pdf", upsert=False):
        full = self._full_path(path)
        if os.path.exists(full) and not upsert:
            raise BlobExistsError(f"El objeto {path} ya existe")
        os.makedirs(os.path.dirname(full), exist_ok=True)
        with open(full, "wb") as f:
            f.write(data)
        logger.debug("Uploaded %s (%d bytes, %s)", path, len(data), content_type)
        return path

    def download(self, path):
        full = self._full_path(path)
        if not os.path.isfile(full):
            raise BlobNotFoundError(f"Objeto no encontrado: {path}")
        with open(full, "rb") as f:
            return f.read()

    def move(self, src, dst):
        src_full = self._full_path(src)
        dst_full = self._full_path(dst)
        if not os.path.isfile(src_full):
            raise BlobNotFoundError(f"Objeto no encontrado: {src}")
        if os.path.exists(dst_full):
            raise BlobExistsError(f"El objeto {dst} ya existe")
        os.makedirs(os.path.dirname(dst_full), exist_ok=True)
        shutil.move(src_full, dst_full)
        return dst

    def remove(self, paths):
        removed = []
        for path in paths:
            full = self._full_path(path)
            if os.path.isfile(full):
                os.remove(full)
                removed.append(path)
        return removed

    def exists(self, path):
        return os.path.isfile(self._full_path(path))

    def size(self, path):
        full = self._full_path(path)
        if not os.path.isfile(full):
            raise BlobNotFoundError(f"Objeto no encontrado: {path}")
        return os.path.getsize(full)

    def append(self, path, data):
        full = self._full_path(path)
        os.makedirs(os.path.dirname(full), exist_ok=True)
        with open(full, "ab") as f:
            f.write(data)
        return os.path.getsize(full)

    def list(self, prefix):
        folder = self._full_path(prefix.rstrip("/"))
        if not os.path.isdir(folder):
            return []
        found = []
        for dirpath, _, filenames in os.walk(folder):
            for name in filenames:
                rel = os.path.relpath(os.path.join(dirpath, name), self.base_dir)
                found.append(rel.replace(os.sep, "/"))
        return sorted(found)

    def public_url(self, path):
        return f"{self.public_base_url}/{self.bucket}/{quote(path)}"
