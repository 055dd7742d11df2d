"""Provider detection: embedded text, then full-page OCR, then a header crop."""

import logging
import re
from pathlib import Path
from typing import Optional, Sequence, Tuple

import config
from engine import EngineFactory, ocr_engine
from models import Box, Provider
from ocr import extract_embedded_text
from rasterizer import Raster

LOGGER = logging.getLogger(__name__)


class ClassificationUnknown(RuntimeError):
    """No provider signature matched after every classification tier."""


# Evaluated in order; Johor is last because "saj" also appears inside
# other words and names.
SIGNATURE_RULES: Sequence[Tuple[Provider, Sequence[re.Pattern]]] = (
    (Provider.SELANGOR, (re.compile(r"air\s*selangor"),)),
    (Provider.MELAKA, (re.compile(r"syarikat\s*air\s*melaka"), re.compile(r"\bsamb\b"))),
    (Provider.NEGERI_SEMBILAN, (re.compile(r"syarikat\s*air\s*negeri\s*sembilan"), re.compile(r"\bsains\b"))),
    (Provider.KEDAH, (re.compile(r"syarikat\s*air\s*darul\s*aman"), re.compile(r"\bsada\b"))),
    (Provider.JOHOR, (re.compile(r"ranhill"), re.compile(r"saj"), re.compile(r"johor"), re.compile(r"darul ta'zim"))),
)

JOHOR_HEADER_SIGNATURES = ("ranhill", "saj", "johor", "darul ta'zim")


def normalize_text(text: Optional[str]) -> str:
    return re.sub(r"\s+", " ", (text or "").lower())


def match_signature(text: Optional[str]) -> Provider:
    """First provider whose signature appears in the text, else UNKNOWN."""
    t = normalize_text(text)
    for provider, patterns in SIGNATURE_RULES:
        if any(p.search(t) for p in patterns):
            return provider
    return Provider.UNKNOWN


def header_box(raster: Raster) -> Box:
    height = min(config.HEADER_CROP_MAX_PX, round(raster.height * config.HEADER_CROP_FRACTION))
    return Box(0, 0, raster.width, height)


class ProviderClassifier:
    def __init__(self, engine_factory: EngineFactory = ocr_engine, header_path: Optional[Path] = None):
        self.engine_factory = engine_factory
        self.header_path = header_path

    def classify(self, pdf_path: Path, raster: Raster) -> Provider:
        text = extract_embedded_text(pdf_path)
        if len(text.strip()) >= config.MIN_EMBEDDED_TEXT_CHARS:
            provider = match_signature(text)
            if provider is not Provider.UNKNOWN:
                LOGGER.info("Embedded text matched provider %s", provider.value)
                return provider
            return self._classify_by_ocr(raster, full_page=False)

        LOGGER.info("Embedded text too short (%d chars) → OCR full page", len(text.strip()))
        return self._classify_by_ocr(raster, full_page=True)

    def _classify_by_ocr(self, raster: Raster, full_page: bool) -> Provider:
        # one engine for whatever OCR this classification still needs
        with self.engine_factory() as engine:
            if full_page:
                page = engine.recognize(raster.image, psm=config.TESSERACT_PAGE_PSM)
                provider = match_signature(page.text)
                if provider is not Provider.UNKNOWN:
                    LOGGER.info("Full-page OCR matched provider %s", provider.value)
                    return provider

            LOGGER.info("Normal text scan failed → OCR header check for Johor...")
            try:
                header = raster.crop(header_box(raster))
                if self.header_path is not None:
                    header.save(self.header_path)
                ocr_text = engine.recognize(header, psm=config.TESSERACT_PAGE_PSM).text.lower()
            except Exception as e:
                LOGGER.warning("Johor OCR fallback failed: %s", e)
                return Provider.UNKNOWN

        if any(sig in ocr_text for sig in JOHOR_HEADER_SIGNATURES):
            LOGGER.info("Header OCR detected Ranhill → Johor")
            return Provider.JOHOR
        return Provider.UNKNOWN


def classify(pdf_path: Path, raster: Raster, engine_factory: EngineFactory = ocr_engine) -> Provider:
    return ProviderClassifier(engine_factory).classify(pdf_path, raster)
