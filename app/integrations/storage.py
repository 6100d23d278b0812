"""Hosted file storage (Cloudinary upload API) plus data-URI helpers.

When no credentials are configured the storage is disabled and callers keep the
file inline in the database instead.
"""

import base64
import binascii
import hashlib
import logging
import time
from typing import Dict, NamedTuple, Optional, Tuple

import httpx

from app.core.config import settings
from app.core.exceptions import IntegrationError

logger = logging.getLogger(__name__)

CLOUDINARY_API_BASE = "https://api.cloudinary.com/v1_1"


class StoredFile(NamedTuple):
    url: str
    # "<resource_type>:<public_id>", needed to delete the file later
    reference: str


def parse_data_uri(value: str) -> Tuple[str, bytes]:
    """Split "data:<mime>;base64,<payload>" into (mime, bytes). Bare base64 is accepted as octet-stream."""
    mime = "application/octet-stream"
    payload = value.strip()
    if payload.startswith("data:"):
        header, sep, payload = payload.partition(",")
        if not sep or ";base64" not in header:
            raise ValueError("Only base64 data URIs are supported")
        mime = header[5:].split(";", 1)[0] or mime
    try:
        return mime, base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError("Invalid base64 content") from e


def to_data_uri(mime: str, data: bytes) -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def sign_params(params: Dict[str, str], api_secret: str) -> str:
    to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params))
    return hashlib.sha1((to_sign + api_secret).encode("utf-8")).hexdigest()


class FileStorage:
    def __init__(
        self,
        cloud_name: Optional[str],
        api_key: Optional[str],
        api_secret: Optional[str],
        folder: str = "attendance",
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.folder = folder
        self._client = client or httpx.AsyncClient(timeout=60.0)

    @classmethod
    def from_settings(cls) -> "FileStorage":
        return cls(
            settings.cloudinary_cloud_name,
            settings.cloudinary_api_key,
            settings.cloudinary_api_secret,
            settings.cloudinary_folder,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)

    def _signed(self, params: Dict[str, str]) -> Dict[str, str]:
        params = dict(params, timestamp=str(int(time.time())))
        return dict(params, signature=sign_params(params, self.api_secret), api_key=self.api_key)

    async def upload(self, data: bytes, content_type: str, subfolder: str = "") -> StoredFile:
        """Upload bytes and return the durable URL. Raises IntegrationError on failure."""
        if not self.enabled:
            raise IntegrationError("File storage is not configured")
        folder = f"{self.folder}/{subfolder}".rstrip("/")
        form = self._signed({"folder": folder})
        form["file"] = to_data_uri(content_type, data)
        try:
            r = await self._client.post(f"{CLOUDINARY_API_BASE}/{self.cloud_name}/auto/upload", data=form)
            r.raise_for_status()
            body = r.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("File upload failed: %s", e)
            raise IntegrationError("File upload failed") from e
        resource_type = body.get("resource_type", "image")
        logger.info("Uploaded %s bytes to %s", len(data), body.get("public_id"))
        return StoredFile(url=body["secure_url"], reference=f"{resource_type}:{body['public_id']}")

    async def delete(self, reference: Optional[str]) -> bool:
        """Best-effort delete; failures are logged and reported as False."""
        if not reference or not self.enabled:
            return False
        resource_type, _, public_id = reference.partition(":")
        if not public_id:
            resource_type, public_id = "image", reference
        form = self._signed({"public_id": public_id})
        try:
            r = await self._client.post(
                f"{CLOUDINARY_API_BASE}/{self.cloud_name}/{resource_type}/destroy", data=form
            )
            r.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("File delete failed for %s: %s", reference, e)
            return False
        return True

    async def aclose(self) -> None:
        await self._client.aclose()
