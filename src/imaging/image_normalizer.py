# src/imaging/image_normalizer.py

"""Downsizes product photos before they are sent for analysis."""

import logging
import shutil
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from src.config.settings import Settings
from src.services.exceptions import ImageUnreadable

logger = logging.getLogger("product_finder.imaging")


def _format_bytes(size: int) -> str:
    """Format a byte count as a short human-readable string."""
    value = float(size)
    for unit in ("Bytes", "KB", "MB"):
        if value < 1024:
            return f"{value:.2f} {unit}"
        value /= 1024
    return f"{value:.2f} GB"


class ImageNormalizer:
    """Bound image payload size by capping the longest side.

    Images whose longest side exceeds ``MAX_DIMENSION`` are scaled down
    (aspect ratio preserved) and re-encoded as progressive JPEG.  Smaller
    images are copied through untouched, so the caller always gets a file
    at the output path.
    """

    def __init__(
        self,
        max_dimension: int | None = None,
        quality: int | None = None,
    ) -> None:
        self.max_dimension = max_dimension or Settings.MAX_DIMENSION
        self.quality = quality or Settings.JPEG_QUALITY

    @staticmethod
    def default_output_path(input_path: Path) -> Path:
        """``photo.jpg`` -> ``photo_resized.jpg`` beside the input."""
        return input_path.with_name(
            f"{input_path.stem}_resized{input_path.suffix}"
        )

    def target_size(self, width: int, height: int) -> tuple[int, int]:
        """Dimensions after normalising; never larger than the input."""
        longest = max(width, height)
        if longest <= self.max_dimension:
            return width, height
        scale = self.max_dimension / longest
        return (
            max(1, round(width * scale)),
            max(1, round(height * scale)),
        )

    def normalize(
        self,
        input_path: Path,
        output_path: Path | None = None,
    ) -> Path:
        """Write a size-bounded version of *input_path* and return its path.

        Raises:
            ImageUnreadable: the input is missing or not a decodable image.
        """
        input_path = Path(input_path)
        output = (
            Path(output_path)
            if output_path is not None
            else self.default_output_path(input_path)
        )
        if not input_path.is_file():
            raise ImageUnreadable(
                f"Input image not found: {input_path}",
                details={"path": str(input_path)},
            )

        try:
            with Image.open(input_path) as img:
                width, height = img.size
                logger.debug(
                    "Original dimensions of %s: %dx%d",
                    input_path.name,
                    width,
                    height,
                )
                new_size = self.target_size(width, height)
                output.parent.mkdir(parents=True, exist_ok=True)

                if new_size == (width, height):
                    logger.debug(
                        "Image already within size limits, copying to %s",
                        output,
                    )
                    if output.resolve() != input_path.resolve():
                        shutil.copyfile(input_path, output)
                    return output

                # Re-encoded output is always JPEG
                if output.suffix.lower() not in (".jpg", ".jpeg"):
                    output = output.with_suffix(".jpg")
                if img.mode != "RGB":
                    img = img.convert("RGB")
                resized = img.resize(
                    new_size, Image.Resampling.LANCZOS
                )
                resized.save(
                    output,
                    format="JPEG",
                    quality=self.quality,
                    progressive=True,
                    optimize=True,
                )
        except (OSError, UnidentifiedImageError) as exc:
            raise ImageUnreadable(
                f"Cannot normalise image: {input_path}",
                details={"path": str(input_path)},
                cause=exc,
            ) from exc

        original_size = input_path.stat().st_size
        new_bytes = output.stat().st_size
        logger.debug(
            "Resized %s to %dx%d, %s -> %s",
            input_path.name,
            new_size[0],
            new_size[1],
            _format_bytes(original_size),
            _format_bytes(new_bytes),
        )
        return output
