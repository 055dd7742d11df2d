import logging
from pathlib import Path
from typing import Optional

import config
from engine import EngineFactory, ocr_engine
from models import Box, Provider, Variant
from rasterizer import Raster

LOGGER = logging.getLogger(__name__)

# Providers that print more than one bill layout
MULTI_LAYOUT_PROVIDERS = frozenset({Provider.SELANGOR})

PRIMARY_MARKER = "baharu"
SECONDARY_MARKER = "lama"


def variant_from_text(text: Optional[str]) -> Variant:
    """Both account labels → dual layout; anything else → single."""
    t = (text or "").lower()
    if PRIMARY_MARKER in t and SECONDARY_MARKER in t:
        return Variant.DUAL
    return Variant.SINGLE


def resolve_variant(
    provider: Provider,
    raster: Raster,
    engine_factory: EngineFactory = ocr_engine,
    sample_path: Optional[Path] = None,
) -> Variant:
    if provider not in MULTI_LAYOUT_PROVIDERS:
        return Variant.SINGLE

    LOGGER.info("Detecting %s layout (Baharu / Baharu + Lama)...", provider.value)
    try:
        sample = raster.crop(raster.scale_box(Box.from_dict(config.LAYOUT_SAMPLE_BOX)))
        if sample_path is not None:
            sample.save(sample_path)
        with engine_factory() as engine:
            text = engine.recognize(sample).text
    except Exception as e:
        LOGGER.warning("Layout sample OCR failed, defaulting to single layout: %s", e)
        return Variant.SINGLE

    LOGGER.info("OCR detected header: %r", text.lower())
    variant = variant_from_text(text)
    if variant is Variant.DUAL:
        LOGGER.info("Detected dual account (Baharu + Lama)")
    elif PRIMARY_MARKER not in text.lower():
        LOGGER.info("No account marker found, defaulting to single layout")
    return variant
