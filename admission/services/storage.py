"""Blob storage behind a small interface: bytes in, public URL out."""

import hashlib
import logging
import os
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from admission.errors import UpstreamFailure, ValidationFailed
from admission.utils.filesystem import sanitize_filename, sanitize_folder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorageConstraints:
    max_bytes: int | None = None
    allowed_extensions: tuple[str, ...] | None = None

    def check(self, data: bytes, filename: str):
        if self.max_bytes is not None and len(data) > self.max_bytes:
            raise ValidationFailed("Arquivo muito grande", ["Arquivo excede o tamanho máximo permitido."])
        if self.allowed_extensions:
            ext = Path(filename).suffix.lower().lstrip(".")
            if ext not in self.allowed_extensions:
                raise ValidationFailed(
                    "Extensão de arquivo não permitida",
                    [f"Extensão .{ext or '?'} não permitida."],
                )


class BlobStorage(Protocol):
    def store(self, data: bytes, folder: str, filename: str,
              constraints: StorageConstraints | None = None) -> str: ...

    def delete(self, url: str) -> bool: ...


class LocalBlobStorage:
    """Writes blobs under ``root`` and serves them from ``{base_url}/arquivos``."""

    def __init__(self, root: Path, base_url: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def store(self, data: bytes, folder: str, filename: str,
              constraints: StorageConstraints | None = None) -> str:
        if constraints is not None:
            constraints.check(data, filename)

        safe_folder = sanitize_folder(folder)
        file_hash = hashlib.sha256(data).hexdigest()
        stored_name = f"{uuid.uuid4().hex[:12]}_{file_hash[:8]}_{sanitize_filename(filename)}"

        target_dir = self.root / safe_folder
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            path = target_dir / stored_name
            path.write_bytes(data)
            os.chmod(path, 0o444)
        except OSError as exc:
            logger.exception("Could not write blob to %s", target_dir)
            raise UpstreamFailure("Falha ao armazenar arquivo") from exc

        relative = f"{safe_folder}/{stored_name}" if safe_folder else stored_name
        return f"{self.base_url}/arquivos/{relative}"


    def delete(self, url: str) -> bool:
        """Remove the blob behind ``url``; False when it is not one of ours or is already gone."""
        prefix = f"{self.base_url}/arquivos/"
        if not url or not url.startswith(prefix):
            return False
        root = self.root.resolve()
        path = (root / url[len(prefix):]).resolve()
        if root not in path.parents:
            return False
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True
