"""
Object store gateway.

Lists audio objects under a folder prefix, issues time-limited signed
URLs, reads objects back through those URLs and stores derived artifacts.

LocalObjectStore keeps objects in a directory tree (key = relative POSIX
path) and signs URLs with itsdangerous; signed URLs are served by the
/api/media/{token} route.
"""

import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import List, Optional, Protocol

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from .errors import ObjectStoreError, SignatureError

logger = logging.getLogger(__name__)

MEDIA_ROUTE = "/api/media"
SIGNING_SALT = "object-store-url"


@dataclass
class ObjectInfo:
    """A single listed object."""
    key: str
    size: int
    last_modified: datetime


class ObjectStore(Protocol):
    """Capabilities the progress engine needs from the content store."""

    def list_objects(self, prefix: str, max_keys: int = 1000) -> List[ObjectInfo]:
        ...

    def sign(self, key: str, ttl_seconds: int = 3600) -> str:
        ...

    def read_signed(self, url: str) -> bytes:
        ...

    def put_object(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        ...


class LocalObjectStore:
    """
    Directory-backed object store with signed URL issuance.

    Listings are returned in key order, truncated to max_keys, matching
    what a single page of a bucket listing returns.
    """

    def __init__(self, root: Path, secret: str, public_url: str = ""):
        """
        Initialize the store.

        Args:
            root: Directory holding the objects
            secret: Secret used to sign URLs
            public_url: Base URL prefixed to signed media paths
        """
        self.root = Path(root)
        self.public_url = public_url.rstrip("/")
        self._serializer = URLSafeTimedSerializer(secret, salt=SIGNING_SALT)
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, key: str) -> Path:
        """
        Map a key to a file path inside the root.

        Raises:
            ObjectStoreError: If the key is empty, absolute or escapes the root.
        """
        parts = PurePosixPath(key).parts
        if not parts or key.startswith("/") or ".." in parts:
            raise ObjectStoreError(f"Invalid object key: {key!r}")
        return self.root.joinpath(*parts)

    def list_objects(self, prefix: str, max_keys: int = 1000) -> List[ObjectInfo]:
        """
        List objects whose key starts with prefix.

        Args:
            prefix: Folder prefix such as "fma_small/003/"
            max_keys: Page size cap

        Returns:
            Up to max_keys objects in key order; empty if the prefix has no objects.

        Raises:
            ObjectStoreError: If the directory cannot be read.
        """
        directory = self.path_for(prefix.rstrip("/"))
        if not directory.is_dir():
            return []

        try:
            objects = []
            for path in directory.rglob("*"):
                if not path.is_file():
                    continue
                stat = path.stat()
                objects.append(ObjectInfo(
                    key=path.relative_to(self.root).as_posix(),
                    size=stat.st_size,
                    last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                ))
        except OSError as e:
            logger.error(f"Failed to list {prefix}: {e}")
            raise ObjectStoreError(f"Failed to list {prefix}: {e}") from e

        objects.sort(key=lambda o: o.key.encode("utf-8"))
        return objects[:max_keys]

    def sign(self, key: str, ttl_seconds: int = 3600) -> str:
        """Issue a URL granting read access to key for ttl_seconds."""
        self.path_for(key)
        token = self._serializer.dumps({"key": key, "ttl": int(ttl_seconds)})
        return f"{self.public_url}{MEDIA_ROUTE}/{token}"

    def verify_token(self, token: str) -> str:
        """
        Check a signed token and return the key it grants.

        Raises:
            SignatureError: If the token is tampered with or expired.
        """
        try:
            # Each token carries its own TTL, so read it before enforcing max_age
            data = self._serializer.loads(token)
            self._serializer.loads(token, max_age=data.get("ttl", 0))
        except SignatureExpired as e:
            raise SignatureError("Signed URL has expired") from e
        except BadSignature as e:
            raise SignatureError("Invalid signed URL") from e
        return data["key"]

    def read_signed(self, url: str) -> bytes:
        """Read the object a signed URL points at."""
        token = url.rstrip("/").rsplit("/", 1)[-1]
        return self.get_object(self.verify_token(token))

    def get_object(self, key: str) -> bytes:
        path = self.path_for(key)
        try:
            return path.read_bytes()
        except OSError as e:
            logger.error(f"Failed to read {key}: {e}")
            raise ObjectStoreError(f"Failed to read {key}: {e}") from e

    def put_object(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        """
        Store data under key, replacing any existing object.

        The write goes to a temporary file in the target directory and is
        moved into place, so readers never see a partial object.
        """
        path = self.path_for(key)
        tmp_path: Optional[str] = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".upload-")
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_path, path)
            tmp_path = None
        except OSError as e:
            logger.error(f"Failed to store {key}: {e}")
            raise ObjectStoreError(f"Failed to store {key}: {e}") from e
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)

        logger.info(f"Stored {key} ({len(data)} bytes, {content_type})")
