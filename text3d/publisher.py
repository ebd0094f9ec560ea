"""
Artifact Publisher
Names generated GLB files and stores them on local disk or in a GCS bucket
"""
import logging
import os
import re
import secrets
import tempfile
from abc import ABC, abstractmethod
from typing import Any, List, Optional

from google.api_core.exceptions import GoogleAPIError
from google.cloud import storage

from . import config
from .errors import PersistenceError

logger = logging.getLogger(__name__)

ARTIFACT_EXTENSION = ".glb"
ARTIFACT_PREFIX = "label-"
ARTIFACT_CONTENT_TYPE = "model/gltf-binary"
MAX_SLUG_LENGTH = 40
SUFFIX_BYTES = 4  # 8 hex characters


def slugify(text: str, max_length: int = MAX_SLUG_LENGTH) -> str:
    """Lowercase text with non-alphanumeric runs collapsed to single dashes"""
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug[:max_length].rstrip("-")


def make_filename(text: str) -> str:
    """Filename for a new artifact, e.g. label-hello-world-1a2b3c4d.glb"""
    slug = slugify(text) or "text"
    return f"{ARTIFACT_PREFIX}{slug}-{secrets.token_hex(SUFFIX_BYTES)}{ARTIFACT_EXTENSION}"


class ArtifactPublisher(ABC):
    """Stores exported models and hands back a public URI"""

    @abstractmethod
    def publish(self, data: bytes, text: str) -> str:
        """Persist data under a name derived from text and return its URI"""

    @abstractmethod
    def list_artifacts(self) -> List[str]:
        """Filenames of stored artifacts"""


class LocalPublisher(ArtifactPublisher):
    """
    Writes artifacts into a directory that the HTTP service also serves
    statically under config.STATIC_PREFIX.
    """

    def __init__(self, directory: str, base_url: str, static_prefix: str = config.STATIC_PREFIX):
        self.directory = directory
        self.base_url = base_url.rstrip("/")
        self.static_prefix = "/" + static_prefix.strip("/")
        os.makedirs(self.directory, exist_ok=True)

    def publish(self, data: bytes, text: str) -> str:
        filename = make_filename(text)
        filepath = os.path.join(self.directory, filename)

        # Write beside the target and rename so a failed write never leaves a .glb behind
        tmp_path = None
        try:
            os.makedirs(self.directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".upload-", suffix=".tmp", dir=self.directory)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_path, filepath)
        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise PersistenceError(f"Failed to write {filename}: {e}") from e

        logger.info(f"File written: {filepath} ({len(data)} bytes)")
        return f"{self.base_url}{self.static_prefix}/{filename}"

    def list_artifacts(self) -> List[str]:
        try:
            files = os.listdir(self.directory)
        except OSError as e:
            raise PersistenceError(f"Could not list {self.directory}: {e}") from e
        return sorted(f for f in files if os.path.splitext(f)[1].lower() == ARTIFACT_EXTENSION)


class GcsPublisher(ArtifactPublisher):
    """Uploads artifacts to a Google Cloud Storage bucket"""

    def __init__(self, bucket_name: str, prefix: str = "", client: Any = None,
                 project: Optional[str] = None):
        if not bucket_name:
            raise RuntimeError("Bucket not configured")
        self.bucket_name = bucket_name
        self.prefix = prefix.lstrip("/")
        self._client = client or storage.Client(project=project)

    def _bucket(self):
        return self._client.bucket(self.bucket_name)

    def publish(self, data: bytes, text: str) -> str:
        filename = make_filename(text)
        key = f"{self.prefix}{filename}"
        try:
            blob = self._bucket().blob(key)
            blob.upload_from_string(data, content_type=ARTIFACT_CONTENT_TYPE)
        except GoogleAPIError as e:
            raise PersistenceError(f"Failed to upload gs://{self.bucket_name}/{key}: {e}") from e

        logger.info(f"Uploaded gs://{self.bucket_name}/{key} ({len(data)} bytes)")
        return blob.public_url

    def list_artifacts(self) -> List[str]:
        try:
            blobs = self._client.list_blobs(self.bucket_name, prefix=self.prefix or None)
            names = [blob.name[len(self.prefix):] for blob in blobs]
        except GoogleAPIError as e:
            raise PersistenceError(f"Could not list gs://{self.bucket_name}/{self.prefix}: {e}") from e
        return sorted(
            n for n in names
            if "/" not in n and os.path.splitext(n)[1].lower() == ARTIFACT_EXTENSION
        )


def create_publisher() -> ArtifactPublisher:
    """Select the storage backend once, from configuration"""
    backend = config.STORAGE_BACKEND
    if backend == "local":
        return LocalPublisher(config.ARTIFACT_DIR, config.PUBLIC_BASE_URL)
    if backend == "gcs":
        if not config.GCS_BUCKET:
            raise EnvironmentError("STORAGE_BACKEND=gcs requires GCS_BUCKET to be set")
        return GcsPublisher(config.GCS_BUCKET, config.GCS_PREFIX, project=config.GCS_PROJECT)
    raise ValueError(f"Unknown STORAGE_BACKEND: {backend!r} (expected 'local' or 'gcs')")
