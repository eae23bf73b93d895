import io
import os
import time
from pathlib import Path
from typing import Iterable
from urllib.parse import unquote, urlparse

from PyPDF2 import PdfReader

from logger import get_logger
from modules.documents.exceptions import NotFoundError, PersistenceError, ValidationError

logger = get_logger(__name__)


def validate_file(file_contents: bytes, filename: str, content_type: str,
                  allowed_types: Iterable[str], max_file_size: int):
    """Valida el archivo subido antes de guardarlo"""

    if content_type not in allowed_types:
        raise ValidationError("Please upload a PDF or image file", {"content_type": content_type})

    if not file_contents:
        raise ValidationError("The uploaded file is empty")

    if len(file_contents) > max_file_size:
        raise ValidationError(f"File size must be less than {max_file_size // (1024 * 1024)}MB")

    if content_type == "application/pdf":
        if not filename.lower().endswith(".pdf"):
            raise ValidationError("PDF files must have a .pdf extension")
        try:
            reader = PdfReader(io.BytesIO(file_contents))
            _ = reader.pages
        except Exception:
            raise ValidationError("Invalid or corrupted PDF")


class LocalBlobStore:
    """Stores uploaded files in a directory and hands out file:// URLs."""

    def __init__(self, upload_dir: str):
        self.upload_dir = Path(upload_dir)

    def put(self, data: bytes, content_type: str, filename: str) -> str:
        safe_name = os.path.basename(filename).replace(" ", "_") or "document"
        stored_name = f"{int(time.time() * 1000)}_{safe_name}"
        try:
            self.upload_dir.mkdir(parents=True, exist_ok=True)
            path = self.upload_dir / stored_name
            with open(path, "wb") as f:
                f.write(data)
        except OSError as e:
            logger.error("blob_write_failed", filename=stored_name, error=str(e))
            raise PersistenceError("Could not store the uploaded file") from e

        logger.info("blob_stored", filename=stored_name, size=len(data), content_type=content_type)
        return path.resolve().as_uri()

    def _path_for(self, url: str) -> Path:
        parsed = urlparse(url)
        if parsed.scheme != "file":
            raise ValidationError(f"Unsupported document URL: {url}")
        path = Path(unquote(parsed.path)).resolve()
        if path.parent != self.upload_dir.resolve():
            raise ValidationError(f"Document URL outside the upload directory: {url}")
        return path

    def get(self, url: str) -> bytes:
        path = self._path_for(url)
        if not path.exists():
            raise NotFoundError("File", path.name)
        with open(path, "rb") as f:
            return f.read()

    def delete(self, url: str):
        try:
            path = self._path_for(url)
        except ValidationError:
            return
        if not path.exists():
            return
        try:
            os.remove(path)
        except OSError as e:
            logger.error("blob_delete_failed", filename=path.name, error=str(e))
            raise PersistenceError("Could not remove the stored file") from e
        logger.info("blob_deleted", filename=path.name)
