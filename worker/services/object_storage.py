"""
ObjectStorage - Blob download/upload against Google Cloud Storage.

Objects are addressed as gs://bucket/key. The google-cloud-storage SDK is
blocking, so transfers run in a thread via asyncio.to_thread(); each
transfer is wrapped in retry().

The SDK client is created lazily on first use so constructing the worker
never needs credentials (tests inject a fake client).
"""

import asyncio
import logging
import re
import time
from pathlib import Path
from typing import Any

from google.cloud import storage

from worker.core.config import Settings
from worker.core.errors import InvalidStorageUri
from worker.core.retry import retry

logger = logging.getLogger(__name__)

_URI_RE = re.compile(r"^([a-z][a-z0-9+.-]*)://([^/]+)/(.+)$")
SUPPORTED_SCHEMES = ("gs",)
DIAGNOSTICS_PREFIX = "diagnostics"


def parse_storage_uri(uri: str) -> tuple[str, str]:
    """Split scheme://bucket/key into (bucket, key)."""
    m = _URI_RE.match(uri or "")
    if not m or m.group(1) not in SUPPORTED_SCHEMES:
        raise InvalidStorageUri(uri)
    return m.group(2), m.group(3)


class ObjectStorage:
    def __init__(self, settings: Settings, client: Any | None = None) -> None:
        self.bucket_name = settings.gcs_bucket_name
        self._keyfile = settings.gcs_keyfile
        self._attempts = settings.retry_attempts
        self._base_delay_ms = settings.retry_base_delay_ms
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            if self._keyfile:
                self._client = storage.Client.from_service_account_json(self._keyfile)
            else:
                self._client = storage.Client()
        return self._client

    async def download(self, uri: str, dest_dir: str | Path) -> Path:
        """Download an object into dest_dir and return the local path."""
        bucket_name, key = parse_storage_uri(uri)
        dest_dir = Path(dest_dir)
        dest_dir.mkdir(parents=True, exist_ok=True)
        dest = dest_dir / f"{int(time.time() * 1000)}-{Path(key).name}"

        blob = self.client.bucket(bucket_name).blob(key)
        await retry(
            lambda: asyncio.to_thread(blob.download_to_filename, str(dest)),
            self._attempts,
            self._base_delay_ms,
        )
        logger.info("Downloaded %s → %s", uri, dest)
        return dest

    async def upload(self, local_path: str | Path, dest_name: str | None = None) -> str:
        """Upload a local file to the worker bucket and return its gs:// URI."""
        local_path = Path(local_path)
        dest_name = dest_name or f"{DIAGNOSTICS_PREFIX}/{local_path.name}"

        blob = self.client.bucket(self.bucket_name).blob(dest_name)
        await retry(
            lambda: asyncio.to_thread(blob.upload_from_filename, str(local_path)),
            self._attempts,
            self._base_delay_ms,
        )
        uri = f"gs://{self.bucket_name}/{dest_name}"
        logger.info("Uploaded %s → %s", local_path.name, uri)
        return uri
