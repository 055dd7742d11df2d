import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np
import pytesseract
from pdfminer.high_level import extract_text
from PIL import Image

import config

LOGGER = logging.getLogger(__name__)


@dataclass
class OcrResult:
    text: str
    tokens: List[str] = field(default_factory=list)
    confidences: List[float] = field(default_factory=list)
    engine: str = ""

    @property
    def field_confidence(self) -> float:
        if not self.confidences:
            return 0.0
        # geometric mean to penalise low tokens
        product = math.prod([max(c, 1e-3) for c in self.confidences])
        return product ** (1 / len(self.confidences))

# --------------------------------------------------------------------------- #
#                               Helper utils                                  #
# --------------------------------------------------------------------------- #
def preprocess_image(image: Image.Image) -> Image.Image:
    """Grayscale + Otsu binarisation; bill crops are dark text on light paper."""
    arr = np.array(image.convert("RGB"))
    gray = cv2.cvtColor(arr, cv2.COLOR_RGB2GRAY)
    _, thresh = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
    return Image.fromarray(thresh)


def _join_tesseract_lines(data: Dict[str, list]) -> Tuple[str, List[str], List[float]]:
    """Rebuild line-broken text from image_to_data output."""
    lines: Dict[Tuple[int, int, int], List[str]] = {}
    tokens, confidences = [], []
    for i, token in enumerate(data["text"]):
        if not token or not token.strip():
            continue
        try:
            conf = float(data["conf"][i])
        except (TypeError, ValueError):
            continue
        if conf < 0:
            continue
        key = (int(data["block_num"][i]), int(data["par_num"][i]), int(data["line_num"][i]))
        lines.setdefault(key, []).append(token.strip())
        tokens.append(token.strip())
        confidences.append(conf / 100.0)
    text = "\n".join(" ".join(words) for _, words in sorted(lines.items()))
    return text, tokens, confidences


def tesseract_ocr(image: Image.Image, psm: Optional[int] = None) -> OcrResult:
    """Run tesseract on a single image, keeping line breaks in the text."""
    img = preprocess_image(image) if config.OCR_BINARIZE else image
    tess_cfg = f"--oem {config.TESSERACT_OEM} --psm {psm or config.TESSERACT_PSM}"
    data = pytesseract.image_to_data(
        img,
        lang=config.TESSERACT_LANG,
        config=tess_cfg,
        output_type=pytesseract.Output.DICT,
    )
    text, tokens, confidences = _join_tesseract_lines(data)
    return OcrResult(text=text, tokens=tokens, confidences=confidences, engine="tesseract")


def paddleocr_ocr(reader, image: Image.Image) -> OcrResult:
    """Run an initialised PaddleOCR reader; one detected text box per line."""
    if image.mode != "RGB":
        image = image.convert("RGB")
    results = reader.ocr(np.array(image))

    tokens, confidences = [], []
    if results and results[0]:
        for line in results[0]:
            if not line or len(line) < 2:
                continue
            text_info = line[1]
            if isinstance(text_info, (list, tuple)) and len(text_info) >= 2:
                text, conf = text_info[0], float(text_info[1])
            else:
                text, conf = str(text_info), 0.9
            if text and text.strip():
                tokens.append(text.strip())
                confidences.append(conf)

    if not tokens:
        LOGGER.warning("PaddleOCR extracted no text from image")
    return OcrResult(text="\n".join(tokens), tokens=tokens, confidences=confidences, engine="paddleocr")


def extract_embedded_text(pdf_path: Path) -> str:
    """Digital text layer of a PDF, or "" when it has none or cannot be read."""
    try:
        LOGGER.info("Running pdfminer (digital text pass)…")
        return extract_text(str(pdf_path)) or ""
    except Exception as exc:
        LOGGER.warning("pdfminer failed: %s", exc)
        return ""
