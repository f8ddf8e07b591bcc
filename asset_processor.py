"""Image reference resolution: data URLs, remote fetches and PNG normalization"""

import base64
import binascii
import logging
import os
import re
from io import BytesIO
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union
from urllib.parse import unquote_to_bytes, urlparse

import requests
from PIL import Image, ImageOps

logger = logging.getLogger("AssetProcessor")

DEFAULT_EXTENSION = "png"
MAX_UPLOAD_BYTES = 50 * 1024 * 1024
UPLOAD_MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
}
CONTENT_TYPE_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/pjpeg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/avif": "avif",
    "image/bmp": "bmp",
    "image/svg+xml": "svg",
}
KNOWN_EXTENSIONS = {"png", "jpg", "jpeg", "webp", "gif", "avif", "bmp", "svg"}

# data:[<mime>][;param...][;base64],<payload>
DATA_URL_REGEX = re.compile(r"^data:(?P<mime>[^;,]*)(?P<params>(;[^;,]*)*),(?P<payload>.*)$", re.DOTALL)


def is_data_url(reference: str) -> bool:
    return reference.startswith("data:")


def is_remote_url(reference: str) -> bool:
    return reference.startswith(("http://", "https://"))


def parse_data_url(data_url: str) -> Tuple[bytes, str]:
    """Decode a data URL into (bytes, mime_type).

    Raises:
        ValueError: If the data URL is malformed or its payload cannot be decoded
    """
    match = DATA_URL_REGEX.match(data_url.strip())
    if not match:
        raise ValueError("Malformed data URL")

    mime_type = (match.group("mime") or "text/plain").strip().lower()
    params = match.group("params") or ""
    payload = match.group("payload")

    if ";base64" in params.lower():
        try:
            blob = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Invalid base64 payload in data URL: {e}")
    else:
        blob = unquote_to_bytes(payload)

    if not blob:
        raise ValueError("Data URL carries an empty payload")
    return blob, mime_type


def fetch_asset_bytes(asset_url: str, timeout: int = 30) -> Tuple[bytes, str]:
    """Fetch bytes and content type from a remote URL"""
    try:
        response = requests.get(asset_url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        logger.error(f"Failed to fetch asset from {asset_url}: {e}")
        raise
    content_type = response.headers.get("Content-Type", "")
    # Drop parameters such as "; charset=binary"
    content_type = content_type.split(";")[0].strip().lower()
    return response.content, content_type


def fetch_blob(reference: str, timeout: int = 30) -> Tuple[bytes, str]:
    """Resolve an image reference (data URL or http(s) URL) as-is.

    Returns:
        Tuple of (blob, content_type). content_type may be empty when the
        remote server does not report one.
    """
    if is_data_url(reference):
        return parse_data_url(reference)
    if is_remote_url(reference):
        return fetch_asset_bytes(reference, timeout=timeout)
    raise ValueError(f"Unsupported image reference: {reference[:60]}")


def to_png_bytes(image_bytes: bytes) -> bytes:
    """Re-encode arbitrary image bytes as PNG"""
    with Image.open(BytesIO(image_bytes)) as loaded_im:
        im = ImageOps.exif_transpose(loaded_im)
        if im.mode == "P":
            im = im.convert("RGBA")
        elif im.mode not in ("RGB", "RGBA", "L", "LA"):
            im = im.convert("RGB")
        output = BytesIO()
        im.save(output, format="PNG", optimize=True)
        return output.getvalue()


def image_url_to_png(reference: str, timeout: int = 30) -> bytes:
    """Resolve an image reference and normalize it to PNG bytes"""
    blob, _ = fetch_blob(reference, timeout=timeout)
    return to_png_bytes(blob)


def get_image_metadata(image_bytes: bytes) -> Dict[str, Any]:
    """Extract width, height, format from image bytes"""
    try:
        with Image.open(BytesIO(image_bytes)) as img:
            return {
                "width": img.width,
                "height": img.height,
                "format": img.format
            }
    except Exception as e:
        logger.debug(f"Could not read image metadata: {e}")
        return {"width": None, "height": None, "format": None}


def _extension_from_reference(reference: str) -> Optional[str]:
    if is_data_url(reference):
        match = DATA_URL_REGEX.match(reference)
        if match:
            return CONTENT_TYPE_EXTENSIONS.get((match.group("mime") or "").lower())
        return None
    suffix = Path(urlparse(reference).path).suffix.lower().lstrip(".")
    if suffix in KNOWN_EXTENSIONS:
        return "jpg" if suffix == "jpeg" else suffix
    return None


def get_image_extension(content_type: str, reference: str = "") -> str:
    """Derive a file extension from a content type, falling back to the reference.

    Args:
        content_type: Resolved MIME type (may be empty)
        reference: Original image reference, used when the content type is unknown

    Returns:
        Extension without dot (defaults to "png")
    """
    ext = CONTENT_TYPE_EXTENSIONS.get((content_type or "").split(";")[0].strip().lower())
    if ext:
        return ext
    return _extension_from_reference(reference or "") or DEFAULT_EXTENSION


def encode_data_url(blob: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(blob).decode('ascii')}"


def fetch_as_data_url(reference: str, timeout: int = 30) -> str:
    """Return a data URL for any image reference (data URLs pass through)"""
    if is_data_url(reference):
        return reference
    blob, content_type = fetch_asset_bytes(reference, timeout=timeout)
    return encode_data_url(blob, content_type or "application/octet-stream")


def file_to_data_url(path: Union[str, Path], max_bytes: int = MAX_UPLOAD_BYTES) -> str:
    """Read a local JPEG/PNG upload as a data URL.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file type is not allowed or the file is too large
    """
    file_path = Path(path)
    if not file_path.is_file():
        raise FileNotFoundError(str(file_path))

    mime_type = UPLOAD_MIME_TYPES.get(file_path.suffix.lower())
    if not mime_type:
        raise ValueError(
            f"Unsupported upload type '{file_path.suffix}'. Allowed: {', '.join(sorted(UPLOAD_MIME_TYPES))}"
        )

    size = os.path.getsize(file_path)
    if size > max_bytes:
        raise ValueError(f"Upload is {size} bytes, maximum is {max_bytes} bytes")

    return encode_data_url(file_path.read_bytes(), mime_type)
