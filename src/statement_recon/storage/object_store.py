"""
Object storage collaborator for uploaded statement files.
"""

from pathlib import Path
from typing import Optional, Protocol
import hashlib
import logging

logger = logging.getLogger(__name__)


class ObjectStorage(Protocol):
    """Interface of the external file store."""

    def upload(self, path: str, data: bytes) -> str:
        ...

    def get_public_url(self, path: str) -> str:
        ...


def storage_path(account_id: str, filename: str, data: bytes) -> str:
    """
    Content-addressed object path for an uploaded file.

    The same file uploaded twice for the same account lands on the same
    path, so re-uploading is idempotent.
    """
    digest = hashlib.sha256(data).hexdigest()[:16]
    safe_name = Path(filename).name.replace(" ", "_") or "statement"
    return f"{account_id}/{digest}_{safe_name}"


class LocalObjectStorage:
    """Stores objects on the local filesystem under a root directory."""

    def __init__(self, root: Path, public_base_url: Optional[str] = None):
        """
        Initialize the store.

        Args:
            root: Directory objects are written under
            public_base_url: Base URL the directory is served from, if any
        """
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

    def upload(self, path: str, data: bytes) -> str:
        target = self.root / path
        if target.exists() and target.read_bytes() == data:
            logger.debug(f"Object already stored: {path}")
        else:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
            logger.info(f"Stored {len(data)} bytes at {target}")
        return self.get_public_url(path)

    def get_public_url(self, path: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{path}"
        return (self.root / path).resolve().as_uri()
