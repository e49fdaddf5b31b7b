"""
File storage locale per upload e report esportati.
"""
import logging
import os
import uuid
from typing import BinaryIO, Optional

logger = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 1024 * 1024


class FileTooLargeError(ValueError):
    """Upload oltre la dimensione massima consentita."""


class FileStorage:
    """Salvataggio file su filesystem locale."""

    def save_file(self, dir_path: str, file_name: str, stream: BinaryIO, max_bytes: Optional[int] = None) -> str:
        """
        Copia il contenuto di ``stream`` in ``dir_path/<id upload>/file_name`` a blocchi.

        Ogni upload ha una sottodirectory propria: due file con lo stesso nome
        non si sovrascrivono e il basename resta il nome originale.

        Args:
            dir_path: Directory di destinazione (creata se mancante)
            file_name: Nome file (solo basename, path rimossi)
            stream: Sorgente binaria
            max_bytes: Limite dimensione (None = nessun limite)

        Returns:
            Path del file salvato

        Raises:
            FileTooLargeError: Se il contenuto supera ``max_bytes`` (file rimosso)
            OSError: Errori filesystem
        """
        upload_dir = os.path.join(dir_path, uuid.uuid4().hex)
        file_path = self._prepare_path(upload_dir, file_name)
        written = 0
        with open(file_path, "wb") as out:
            while True:
                chunk = stream.read(COPY_CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if max_bytes is not None and written > max_bytes:
                    out.close()
                    os.remove(file_path)
                    os.rmdir(upload_dir)
                    raise FileTooLargeError(f"file {file_name} exceeds {max_bytes} bytes")
                out.write(chunk)

        logger.info(f"[FILE_STORAGE] Saved {written} bytes to {file_path}")
        return file_path

    def create_file(self, dir_path: str, file_name: str) -> str:
        """Crea (o tronca) un file vuoto e ne ritorna il path."""
        file_path = self._prepare_path(dir_path, file_name)
        with open(file_path, "wb"):
            pass
        logger.info(f"[FILE_STORAGE] Created empty file {file_path}")
        return file_path

    @staticmethod
    def _prepare_path(dir_path: str, file_name: str) -> str:
        safe_name = os.path.basename(file_name or "").strip()
        if not safe_name or safe_name in (".", ".."):
            raise ValueError(f"Invalid file name: {file_name!r}")
        os.makedirs(dir_path, exist_ok=True)
        return os.path.join(dir_path, safe_name)
