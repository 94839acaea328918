"""Downsizing of large images before upload."""

import io
import logging
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

# Formats that are uploaded as-is
_PASSTHROUGH_TYPES = ("image/svg+xml", "image/gif")


@dataclass(frozen=True)
class ProcessedImage:
    """Image bytes ready for upload."""
    data: bytes
    mime_type: str
    transformed: bool
    original_size: int
    new_size: int


class ImageTransformer:
    """
    Downsizes images wider than ``max_width`` and re-encodes them as WebP.

    Only the uploaded copy changes; claims keep the fingerprint of the
    original bytes.
    """

    def __init__(self, max_width: int = 2000, quality: int = 85):
        self.max_width = max_width
        self.quality = quality

    def _unchanged(self, data: bytes, mime_type: str) -> ProcessedImage:
        return ProcessedImage(
            data=data,
            mime_type=mime_type,
            transformed=False,
            original_size=len(data),
            new_size=len(data),
        )

    def process(self, data: bytes, mime_type: str) -> ProcessedImage:
        """
        Prepare an image for upload.

        Args:
            data: Original image bytes
            mime_type: Original MIME type

        Returns:
            The downsized WebP image, or the original when no change is needed
            or the image cannot be decoded
        """
        if mime_type in _PASSTHROUGH_TYPES:
            return self._unchanged(data, mime_type)

        try:
            with Image.open(io.BytesIO(data)) as img:
                width, height = img.size
                if width <= self.max_width:
                    return self._unchanged(data, mime_type)

                target_height = max(1, round(height * self.max_width / width))
                resized = img.resize((self.max_width, target_height), Image.Resampling.LANCZOS)
                if resized.mode not in ("RGB", "RGBA"):
                    resized = resized.convert("RGBA" if "A" in resized.getbands() else "RGB")

                out = io.BytesIO()
                resized.save(out, "WEBP", quality=self.quality)
        except (UnidentifiedImageError, OSError) as e:
            logger.warning(f"Could not transform image ({mime_type}): {e}")
            return self._unchanged(data, mime_type)

        result = out.getvalue()
        logger.info(
            f"Image downsized {width}x{height} -> {self.max_width}x{target_height} "
            f"({len(data)} -> {len(result)} bytes)"
        )
        return ProcessedImage(
            data=result,
            mime_type="image/webp",
            transformed=True,
            original_size=len(data),
            new_size=len(result),
        )
