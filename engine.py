import logging
from contextlib import contextmanager
from typing import Callable, ContextManager, Iterator, Optional

from PIL import Image

import config
from ocr import OcrResult, paddleocr_ocr, tesseract_ocr

try:
    from paddleocr import PaddleOCR
except ImportError:  # pragma: no cover - optional dependency
    PaddleOCR = None

LOGGER = logging.getLogger(__name__)


class EngineInterface:
    """Abstract base class for OCR engines."""

    name = "base"

    def recognize(self, image: Image.Image, psm: Optional[int] = None) -> OcrResult:
        raise NotImplementedError

    def close(self) -> None:
        """Release engine resources; engines are never reused after close."""


class TesseractEngine(EngineInterface):
    name = "tesseract"

    def recognize(self, image: Image.Image, psm: Optional[int] = None) -> OcrResult:
        result = tesseract_ocr(image, psm=psm)
        LOGGER.debug("tesseract: %d tokens, confidence %.2f", len(result.tokens), result.field_confidence)
        return result


class PaddleEngine(EngineInterface):
    """PaddleOCR engine; psm is a tesseract notion and is ignored here."""

    name = "paddleocr"

    def __init__(self, lang: Optional[str] = None):
        if PaddleOCR is None:
            raise RuntimeError("paddleocr is not available")
        self.reader = PaddleOCR(lang=lang or config.PADDLEOCR_LANG, use_angle_cls=False, show_log=False)

    def recognize(self, image: Image.Image, psm: Optional[int] = None) -> OcrResult:
        if self.reader is None:
            raise RuntimeError("PaddleOCR engine already closed")
        result = paddleocr_ocr(self.reader, image)
        LOGGER.debug("paddleocr: %d lines, confidence %.2f", len(result.tokens), result.field_confidence)
        return result

    def close(self) -> None:
        self.reader = None


ENGINES = {
    "tesseract": TesseractEngine,
    "paddleocr": PaddleEngine,
}


def create_engine(backend: Optional[str] = None) -> EngineInterface:
    backend = backend or config.OCR_BACKEND
    try:
        engine_cls = ENGINES[backend]
    except KeyError:
        raise ValueError(f"Unsupported OCR backend: {backend}")
    return engine_cls()


@contextmanager
def ocr_engine(backend: Optional[str] = None) -> Iterator[EngineInterface]:
    """Acquire an OCR engine for one extraction phase and always release it."""
    engine = create_engine(backend)
    LOGGER.debug("OCR engine %s acquired", engine.name)
    try:
        yield engine
    finally:
        engine.close()
        LOGGER.debug("OCR engine %s released", engine.name)


EngineFactory = Callable[[], ContextManager[EngineInterface]]
