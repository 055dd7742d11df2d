"""Central configuration for the water bill extraction pipeline.

Every value can be overridden with an environment variable of the same name.
"""

import os


def _env_str(name: str, default: str) -> str:
    return os.getenv(name, default)


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# --- OCR back-end selection --------------------------------------------------
# Options: "tesseract", "paddleocr"
OCR_BACKEND = _env_str("OCR_BACKEND", "tesseract")
OCR_BINARIZE = _env_bool("OCR_BINARIZE", True)  # Otsu threshold before OCR

# --- Tesseract options -------------------------------------------------------
TESSERACT_LANG = _env_str("TESSERACT_LANG", "eng")
TESSERACT_OEM = _env_int("TESSERACT_OEM", 3)        # LSTM engine
TESSERACT_PSM = _env_int("TESSERACT_PSM", 6)        # single block, used for field crops
TESSERACT_PAGE_PSM = _env_int("TESSERACT_PAGE_PSM", 3)  # full page / header crops

# --- PaddleOCR options -------------------------------------------------------
PADDLEOCR_LANG = _env_str("PADDLEOCR_LANG", "en")

# --- Rasterization -----------------------------------------------------------
DPI_PRIMARY = _env_int("DPI_PRIMARY", 300)
# Canonical design resolution every template is authored against
DESIGN_WIDTH = 2481
DESIGN_HEIGHT = 3509

# --- Classification ----------------------------------------------------------
MIN_EMBEDDED_TEXT_CHARS = 100
HEADER_CROP_FRACTION = 0.25
HEADER_CROP_MAX_PX = 400

# --- Layout variants ---------------------------------------------------------
# Region of a Selangor bill where the "Baharu" / "Lama" account labels sit
LAYOUT_SAMPLE_BOX = {"x": 1600, "y": 250, "w": 800, "h": 250}

# --- Address block geometry --------------------------------------------------
ADDRESS_BASELINE_LINES = 6
ADDRESS_LINE_PITCH_PX = 50

# --- Debug overlay -----------------------------------------------------------
OVERLAY_COLOR = "red"
OVERLAY_LINE_WIDTH = 4

# --- Folders -----------------------------------------------------------------
TEMPLATES_DIR = _env_str("TEMPLATES_DIR", "templates")
OUTPUT_DIR = _env_str("OUTPUT_DIR", "output")
DEBUG_DIR = _env_str("DEBUG_DIR", "debug_text")

# --- Batch / service ---------------------------------------------------------
MAX_WORKER_THREADS = _env_int("MAX_WORKER_THREADS", 3)
PORT = _env_int("PORT", 5008)
LOG_LEVEL = _env_str("LOG_LEVEL", "INFO")
