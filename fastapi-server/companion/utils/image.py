import base64
import binascii
from dataclasses import dataclass
from typing import Any, Dict

from fastapi import UploadFile

from companion.errors import ImageRequiredError

DEFAULT_IMAGE_MIME = "image/jpeg"


@dataclass(frozen=True)
class InlineImage:
    """Image bytes plus the mime type they were picked with."""

    mime_type: str
    data: bytes

    @property
    def base64_data(self) -> str:
        return base64.b64encode(self.data).decode("utf-8")

    @property
    def data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.base64_data}"

    def to_part(self) -> Dict[str, Any]:
        return {"inline_data": {"mime_type": self.mime_type, "data": self.data}}


async def image_from_upload(upload: UploadFile) -> InlineImage:
    """Read a picked/captured file into the inline representation requests need."""
    content = await upload.read()
    if not content:
        raise ImageRequiredError("Uploaded image is empty.")
    return InlineImage(mime_type=upload.content_type or DEFAULT_IMAGE_MIME, data=content)


def image_from_data_uri(uri: str) -> InlineImage:
    if not uri.startswith("data:") or ";base64," not in uri:
        raise ImageRequiredError(f"Not a base64 data URI: {uri[:32]}")
    header, encoded = uri.split(";base64,", 1)
    try:
        data = base64.b64decode(encoded, validate=True)
    except binascii.Error as e:
        raise ImageRequiredError(f"Invalid base64 image payload: {e}") from e
    return InlineImage(mime_type=header[len("data:"):] or DEFAULT_IMAGE_MIME, data=data)


def png_data_uri(base64_png: str) -> str:
    return f"data:image/png;base64,{base64_png}"
