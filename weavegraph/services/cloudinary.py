"""
Media collaborator backed by Cloudinary.

Crops are Cloudinary delivery transformations: a new URL
is derived from the original by injecting a transformation segment after
``/upload/``. Uploads go through the unsigned upload API with an upload preset.
"""
from __future__ import annotations

import re
from typing import Optional

import logging

import httpx

from ..config import Settings
from ..core.Errors import TransportError, ValidationError

logger = logging.getLogger(__name__)

UPLOAD_API = "https://api.cloudinary.com/v1_1"
RESOURCE_TYPES = ("image", "video", "raw")

# A leading transformation segment such as "c_crop,x_0.1,y_0.2/"; versions ("v123/") are kept.
_TRANSFORMATION_SEGMENT = re.compile(r"^(?!v\d+/)[a-z]{1,3}_[^/]*/")


def _split_upload_url(url: str) -> tuple:
    parts = url.split("/upload/")
    if len(parts) != 2 or not parts[1]:
        raise ValidationError("Invalid Cloudinary URL format")
    return parts[0], parts[1]


def _relative(percent: float) -> str:
    # Cloudinary treats decimal values as fractions of the source dimension
    text = f"{percent / 100:.4f}".rstrip("0")
    return text + "0" if text.endswith(".") else text


def crop_url(image_url: str, x: float, y: float, width: float, height: float) -> str:
    """Derive a cropped image URL; coordinates are percentages of the source image."""
    if "cloudinary.com" not in image_url:
        raise ValidationError("Invalid Cloudinary URL")

    base, rest = _split_upload_url(image_url)
    rest = _TRANSFORMATION_SEGMENT.sub("", rest, count=1)
    transform = f"c_crop,x_{_relative(x)},y_{_relative(y)},w_{_relative(width)},h_{_relative(height)}"
    return f"{base}/upload/{transform}/{rest}"


class CloudinaryMedia:
    def __init__(self,
                 cloud_name: str,
                 upload_preset: str,
                 folder: Optional[str] = None,
                 timeout: float = 120.0,
                 client: Optional[httpx.AsyncClient] = None):
        self.cloud_name = cloud_name
        self.upload_preset = upload_preset
        self.folder = folder
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> "CloudinaryMedia":
        if not settings.cloudinary_cloud_name or not settings.cloudinary_upload_preset:
            raise ValueError("CLOUDINARY_CLOUD_NAME and CLOUDINARY_UPLOAD_PRESET must be set")
        return cls(settings.cloudinary_cloud_name, settings.cloudinary_upload_preset, client=client)

    async def crop(self, image_url: str, x: float, y: float, width: float, height: float) -> str:
        return crop_url(image_url, x, y, width, height)

    async def upload(self, content: bytes, filename: str, resource_type: str = "image") -> str:
        if resource_type not in RESOURCE_TYPES:
            raise ValidationError(f"Unsupported resource type '{resource_type}'")

        data = {"upload_preset": self.upload_preset}
        if self.folder:
            data["folder"] = self.folder

        url = f"{UPLOAD_API}/{self.cloud_name}/{resource_type}/upload"
        try:
            response = await self._client.post(url, data=data, files={"file": (filename, content)})
        except httpx.HTTPError as exc:
            raise TransportError(f"Upload failed: {exc}") from exc

        if response.is_error:
            raise TransportError(_upload_error(response))

        secure_url = response.json().get("secure_url")
        if not secure_url:
            raise TransportError("Upload response carried no secure_url")
        logger.info(f"Uploaded {filename} to {secure_url}")
        return secure_url

    async def aclose(self) -> None:
        await self._client.aclose()


def _upload_error(response: httpx.Response) -> str:
    try:
        message = (response.json().get("error") or {}).get("message")
    except ValueError:
        message = None
    return message or f"Upload failed with status {response.status_code}"
