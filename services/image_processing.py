"""Image helpers for captured uploads."""

from __future__ import annotations

import io

from PIL import Image, UnidentifiedImageError
from werkzeug.datastructures import FileStorage


class ImageProcessingError(RuntimeError):
    """Raised when a capture cannot be decoded."""


def capture_to_png(upload: FileStorage) -> bytes:
    """Decode an uploaded capture and re-encode it as PNG without altering pixels."""
    if upload is None or upload.filename == "":
        raise ImageProcessingError("No image provided.")

    raw = upload.read()
    if not raw:
        raise ImageProcessingError("Uploaded image is empty.")

    try:
        with Image.open(io.BytesIO(raw)) as img:
            if img.mode not in ("RGB", "RGBA", "L", "LA"):
                img = img.convert("RGB")
            buffer = io.BytesIO()
            img.save(buffer, format="PNG")
            return buffer.getvalue()
    except (UnidentifiedImageError, OSError) as exc:
        raise ImageProcessingError(f"Could not decode uploaded image: {exc}") from exc
