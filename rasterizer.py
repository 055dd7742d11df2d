import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pdf2image import convert_from_path
from PIL import Image

import config
from models import Box

LOGGER = logging.getLogger(__name__)


class RasterizationError(RuntimeError):
    """The PDF renderer produced no usable page image."""


@dataclass
class Raster:
    """Page image in the canonical design resolution."""

    image: Image.Image
    path: Optional[Path] = None

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def scale_x(self) -> float:
        return self.width / config.DESIGN_WIDTH

    @property
    def scale_y(self) -> float:
        return self.height / config.DESIGN_HEIGHT

    def scale_box(self, box: Box, offset_y: float = 0) -> Box:
        return box.scaled(self.scale_x, self.scale_y, offset_y)

    def crop(self, box: Box) -> Image.Image:
        """Crop an already-scaled box; regions outside the page are rejected."""
        left, top, right, bottom = box.corners
        if box.w <= 0 or box.h <= 0:
            raise ValueError(f"Empty crop region {box}")
        if left < 0 or top < 0 or right > self.width or bottom > self.height:
            raise ValueError(
                f"Crop region {(left, top, right, bottom)} outside page {self.width}x{self.height}"
            )
        return self.image.crop((left, top, right, bottom))


def render_page(pdf_path: Path, dpi: int) -> Image.Image:
    """Render the first page only; multi-page bills use their first page."""
    try:
        images = convert_from_path(str(pdf_path), dpi=dpi, first_page=1, last_page=1)
    except Exception as e:
        if "poppler" in str(e).lower() or "pdftoppm" in str(e).lower():
            raise RasterizationError(f"PDF processing failed - please ensure poppler-utils is installed: {e}")
        raise RasterizationError(f"Failed to convert PDF '{pdf_path.name}' to images: {e}")
    if not images:
        raise RasterizationError(f"PDF '{pdf_path.name}' produced no images (may be corrupted or have no pages)")
    return images[0]


def rasterize(pdf_path: Path, out_path: Optional[Path] = None) -> Raster:
    """Render at DPI_PRIMARY and resample to DESIGN_WIDTH x DESIGN_HEIGHT."""
    pdf_path = Path(pdf_path)
    page = render_page(pdf_path, config.DPI_PRIMARY)
    LOGGER.info("Rendered PDF image dimensions: %dx%d", page.width, page.height)

    image = page.convert("RGB").resize((config.DESIGN_WIDTH, config.DESIGN_HEIGHT), Image.LANCZOS)
    if out_path is not None:
        image.save(out_path)
        LOGGER.info("Generated PNG → %s", out_path)
    return Raster(image=image, path=out_path)
