"""Template-driven field extraction.

Each template box is scaled from design coordinates onto the page raster,
cropped and OCR'd on its own. Fields printed below the address block move
with it: when the address has fewer lines than the 6 the templates were
drawn with, everything under it sits higher on the page, so those boxes get
a vertical offset of 50 design pixels per missing line.
"""

import logging
import re
from datetime import date
from typing import Dict, List, Optional, Tuple

from PIL import ImageDraw

import config
from engine import EngineFactory, EngineInterface, ocr_engine
from models import ADDRESS_FIELD, Box, ExtractionResult, Provider, Template
from rasterizer import Raster
from workspace import Workspace

LOGGER = logging.getLogger(__name__)

PERIOD_START_FIELD = "Bilangan Hari - Start"
PERIOD_END_FIELD = "Bilangan Hari - End"

# Fields laid out below the address block
OFFSET_FIELDS = frozenset({
    "No. Meter",
    PERIOD_START_FIELD,
    PERIOD_END_FIELD,
    "Baki Terdahulu",
    "Bil Semasa",
    "Jumlah Perlu Dibayar",
    "Penggunaan (m3)",
})

NUMERIC_FIELDS = frozenset({
    "Bil Semasa",
    "Jumlah Perlu Dibayar",
    "Baki Terdahulu",
    "Cagaran",
    "Penggunaan (m3)",
})

# State names printed on the last genuine address line
ADDRESS_STOP_WORDS = ("selangor", "kuala lumpur", "putrajaya", "labuan")

DATE_RE = re.compile(r"(\d{1,2})[/\-](\d{1,2})[/\-](\d{2,4})")


class FieldExtractionFailure(RuntimeError):
    """A single template field could not be cropped or recognised."""


# --------------------------------------------------------------------------- #
#                               Text cleaners                                 #
# --------------------------------------------------------------------------- #
def clean_numeric(value: Optional[str]) -> str:
    """'RM 1,234.56' -> '1234.56'."""
    if not value:
        return ""
    value = re.sub(r"rm\s*", "", value, flags=re.I)
    value = re.sub(r"[^\d.,]", "", value)
    return re.sub(r",+", "", value).strip()


def _split_lines(text: str) -> List[str]:
    return [line.strip() for line in re.split(r"\n+", text) if line.strip()]


def clean_address(text: Optional[str]) -> str:
    """Drop boilerplate lines printed after the state name."""
    if not text:
        return ""
    lines = _split_lines(text)
    last = -1
    for i, line in enumerate(lines):
        if any(word in line.lower() for word in ADDRESS_STOP_WORDS):
            last = i
    if last != -1:
        lines = lines[: last + 1]
    return "\n".join(lines)


def count_address_lines(text: Optional[str]) -> int:
    if not text:
        return config.ADDRESS_BASELINE_LINES
    lines = _split_lines(text)
    LOGGER.info("Address OCR lines (%d): %s", len(lines), lines)
    return len(lines)


def compute_offset(line_count: int) -> int:
    """Signed y shift in design pixels; negative moves boxes up the page."""
    return -(config.ADDRESS_BASELINE_LINES - line_count) * config.ADDRESS_LINE_PITCH_PX


# --------------------------------------------------------------------------- #
#                               Billing period                                #
# --------------------------------------------------------------------------- #
def normalize_date(text: Optional[str]) -> Optional[str]:
    """First d/m/y date in the text as DD/MM/YYYY; 2-digit years are 20xx."""
    m = DATE_RE.search(text or "")
    if not m:
        return None
    dd, mm, yy = m.groups()
    yyyy = "20" + yy if len(yy) == 2 else yy
    return f"{dd.zfill(2)}/{mm.zfill(2)}/{yyyy}"


def parse_date(value: str) -> Optional[date]:
    m = DATE_RE.fullmatch(value.strip())
    if not m:
        return None
    dd, mm, yyyy = (int(g) for g in m.groups())
    try:
        return date(yyyy, mm, dd)
    except ValueError:
        return None


def day_count(first: str, second: str) -> Optional[int]:
    """Absolute number of days between two DD/MM/YYYY dates."""
    d1, d2 = parse_date(first), parse_date(second)
    if d1 is None or d2 is None:
        return None
    return abs((d2 - d1).days)


def derive_period(start_raw: Optional[str], end_raw: Optional[str]) -> Tuple[str, str]:
    """("start - end", days) or ("", "") when either date is unreadable."""
    start, end = normalize_date(start_raw), normalize_date(end_raw)
    if not start or not end:
        return "", ""
    days = day_count(start, end)
    if days is None:
        LOGGER.warning("Invalid billing period dates %s / %s", start, end)
        return "", ""
    return f"{start} - {end}", str(days)


# --------------------------------------------------------------------------- #
#                               Executor                                      #
# --------------------------------------------------------------------------- #
class FieldExtractor:
    def __init__(self, workspace: Optional[Workspace] = None, engine_factory: EngineFactory = ocr_engine):
        self.workspace = workspace
        self.engine_factory = engine_factory

    def extract(
        self,
        raster: Raster,
        template: Template,
        file_name: str,
        provider: Provider,
        region: Optional[str] = None,
    ) -> ExtractionResult:
        region = region or provider.value
        results: Dict[str, str] = {}
        boxes: List[Box] = []

        if template.is_empty():
            LOGGER.warning("Template %s has no fields; nothing to extract", template.key)

        with self.engine_factory() as engine:
            address_text = ""
            if template.address is not None:
                box = raster.scale_box(template.address)
                boxes.append(box)
                try:
                    address_text = clean_address(self._read_region(engine, raster, ADDRESS_FIELD, box, file_name))
                except FieldExtractionFailure as e:
                    LOGGER.warning("OCR failed for %s: %s", ADDRESS_FIELD, e)
                results[ADDRESS_FIELD] = address_text

            address_lines = count_address_lines(address_text)
            offset_y = compute_offset(address_lines)

            for name, template_box in template.regions():
                box = raster.scale_box(template_box, offset_y if name in OFFSET_FIELDS else 0)
                boxes.append(box)
                try:
                    text = self._read_region(engine, raster, name, box, file_name)
                except FieldExtractionFailure as e:
                    LOGGER.warning("OCR failed for %s: %s", name, e)
                    results[name] = ""
                    continue
                if name in NUMERIC_FIELDS:
                    text = clean_numeric(text)
                results[name] = text
                LOGGER.info("✂️ %s: %s", name, text)

        self._save_overlay(raster, boxes, file_name)

        # The "End" box holds the period start and vice versa on these forms
        period, days = derive_period(results.get(PERIOD_END_FIELD), results.get(PERIOD_START_FIELD))
        results.pop(PERIOD_START_FIELD, None)
        results.pop(PERIOD_END_FIELD, None)

        return ExtractionResult(
            file_name=file_name,
            provider=provider,
            region=region,
            fields=results,
            address_lines=address_lines,
            offset_y=offset_y,
            period=period,
            period_days=days,
        )

    def _read_region(self, engine: EngineInterface, raster: Raster, name: str, box: Box, file_name: str) -> str:
        try:
            crop = raster.crop(box)
            if self.workspace is not None:
                crop.save(self.workspace.crop_path(file_name, name))
            return engine.recognize(crop).text.strip()
        except Exception as e:
            raise FieldExtractionFailure(f"{name}: {e}") from e

    def _save_overlay(self, raster: Raster, boxes: List[Box], file_name: str) -> None:
        if self.workspace is None:
            return
        try:
            overlay = raster.image.convert("RGB")
            draw = ImageDraw.Draw(overlay)
            for box in boxes:
                left, top, right, bottom = box.corners
                draw.rectangle(
                    (left, top, right, bottom),
                    outline=config.OVERLAY_COLOR,
                    width=config.OVERLAY_LINE_WIDTH,
                )
            out = self.workspace.debug_path(file_name, "_overlay")
            overlay.save(out)
            LOGGER.info("Saved debug overlay → %s (%d rectangles)", out, len(boxes))
        except Exception as e:
            LOGGER.warning("Debug overlay failed: %s", e)


def extract(
    raster: Raster,
    template: Template,
    file_name: str,
    provider: Provider,
    region: Optional[str] = None,
    workspace: Optional[Workspace] = None,
    engine_factory: EngineFactory = ocr_engine,
) -> ExtractionResult:
    return FieldExtractor(workspace, engine_factory).extract(raster, template, file_name, provider, region)
