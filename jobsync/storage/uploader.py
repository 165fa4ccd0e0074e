"""Attachment upload to object storage.

Uploads are best-effort: a file that fails to upload is skipped and logged,
and the caller attaches whatever URLs did come back.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path

import httpx

from jobsync.core.config import StorageConfig

logger = logging.getLogger(__name__)

_CLOUDINARY_UPLOAD_URL = "https://api.cloudinary.com/v1_1/{cloud_name}/image/upload"


class AttachmentUploader(ABC):
    """Base class for object storage uploaders."""

    @abstractmethod
    async def upload(self, file: Path) -> str:
        """Upload ``file`` and return its public URL.

        Raises:
            OSError: The file could not be read.
            httpx.HTTPError: The upload request failed.
            ValueError: Storage answered without a URL.
        """

    async def upload_all(self, files: list[Path]) -> list[str]:
        """Upload every file, skipping the ones that fail."""
        urls: list[str] = []
        for file in files:
            try:
                urls.append(await self.upload(file))
            except (OSError, httpx.HTTPError, ValueError) as e:
                logger.warning("Skipping attachment %s: %s", file, e)
        return urls


class CloudinaryUploader(AttachmentUploader):
    """Unsigned uploads to Cloudinary with an upload preset.

    Usage::

        async with httpx.AsyncClient() as client:
            uploader = CloudinaryUploader(client, settings.storage)
            url = await uploader.upload(Path("screenshot.png"))
    """

    def __init__(self, client: httpx.AsyncClient, config: StorageConfig) -> None:
        self._client = client
        self._config = config

    @property
    def configured(self) -> bool:
        return bool(self._config.cloud_name and self._config.upload_preset)

    async def upload(self, file: Path) -> str:
        url = _CLOUDINARY_UPLOAD_URL.format(cloud_name=self._config.cloud_name)
        resp = await self._client.post(
            url,
            data={"upload_preset": self._config.upload_preset, "folder": self._config.folder},
            files={"file": (file.name, file.read_bytes())},
            timeout=self._config.timeout_seconds,
        )
        resp.raise_for_status()
        secure_url = resp.json().get("secure_url")
        if not secure_url:
            msg = f"Cloudinary returned no secure_url for {file.name}"
            raise ValueError(msg)
        return str(secure_url)

    async def upload_all(self, files: list[Path]) -> list[str]:
        if not files:
            return []
        if not self.configured:
            logger.error("Cloudinary cloud_name/upload_preset missing; not uploading %d file(s)", len(files))
            return []
        return await super().upload_all(files)
