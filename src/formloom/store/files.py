import json
import logging
import re
from pathlib import Path
from uuid import uuid4

from formloom.exceptions import DataSourceError

logger = logging.getLogger(__name__)

_HANDLE_SHAPE = re.compile(r"^[a-f0-9]{32}$")


class LocalFileStore:
    """
    Uploaded files on local disk, addressed by an opaque handle.
    The original filename is kept in a ``<handle>.json`` sidecar.
    """

    def __init__(self, root: Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def upload(self, content: bytes, filename: str) -> str:
        handle = uuid4().hex
        self._blob_path(handle).write_bytes(content)
        self._meta_path(handle).write_text(
            json.dumps({"filename": filename, "size": len(content)}, ensure_ascii=False),
            encoding="utf-8",
        )
        logger.info("stored upload", extra={"file_id": handle, "file_name": filename, "size": len(content)})
        return handle

    def download(self, handle: str) -> bytes:
        path = self._blob_path(self._checked(handle))
        if not path.exists():
            raise DataSourceError(f"File not found: {handle}")
        return path.read_bytes()

    def metadata(self, handle: str) -> dict:
        path = self._meta_path(self._checked(handle))
        if not path.exists():
            raise DataSourceError(f"File not found: {handle}")
        return json.loads(path.read_text(encoding="utf-8"))

    def delete(self, handle: str) -> None:
        handle = self._checked(handle)
        self._blob_path(handle).unlink(missing_ok=True)
        self._meta_path(handle).unlink(missing_ok=True)

    @staticmethod
    def _checked(handle: str) -> str:
        # Handles come from clients; never let one escape the upload dir.
        if not handle or not _HANDLE_SHAPE.match(handle):
            raise DataSourceError(f"File not found: {handle}")
        return handle

    def _blob_path(self, handle: str) -> Path:
        return self.root / f"{handle}.bin"

    def _meta_path(self, handle: str) -> Path:
        return self.root / f"{handle}.json"
