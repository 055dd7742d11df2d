"""Water bill extraction pipeline.

Takes a PDF bill from one of the Malaysian regional water utilities and
produces a canonical billing record:

    rasterize -> classify provider -> resolve layout -> load template
    -> extract fields -> provider normalizer -> standardize

Usage: python pipeline.py <bill.pdf|folder> [--save out.json] [--workers N]
"""

import concurrent.futures
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import config
from classifier import ClassificationUnknown, ProviderClassifier
from engine import EngineFactory, ocr_engine
from extractor import FieldExtractor
from layout import resolve_variant
from models import NormalizedRecord, Provider, layout_key
from normalizers import normalize
from rasterizer import rasterize
from standardize import standardize
from workspace import Workspace

LOGGER = logging.getLogger(__name__)

UNKNOWN_REGION = "Unknown region"


class InvalidDocument(ValueError):
    """The input file is not something the pipeline can read."""


def validate_pdf(file_path: Path) -> None:
    """Reject missing, empty and non-PDF files before any rendering.

    Raises:
        InvalidDocument: If the file is missing, empty or lacks a PDF signature
    """
    file_path = Path(file_path)
    if not file_path.is_file():
        raise InvalidDocument(f"File '{file_path}' does not exist")

    with open(file_path, "rb") as f:
        header = f.read(16)
    if not header:
        raise InvalidDocument(f"File '{file_path.name}' is empty (0 bytes)")
    if not header.startswith(b"%PDF-"):
        raise InvalidDocument(f"File '{file_path.name}' is not a valid PDF file")


class BillPipeline:
    """Runs one bill at a time through every stage.

    Holds no per-document state, so a single instance can be shared by
    worker threads.
    """

    def __init__(self, workspace: Optional[Workspace] = None, engine_factory: EngineFactory = ocr_engine):
        self.workspace = workspace or Workspace.from_config()
        self.engine_factory = engine_factory
        self.extractor = FieldExtractor(self.workspace, engine_factory)

    def process(self, pdf_path: Path, file_name: Optional[str] = None) -> NormalizedRecord:
        """Extract one bill; raises on unusable input or an unknown provider."""
        pdf_path = Path(pdf_path)
        file_name = file_name or pdf_path.name
        ws = self.workspace
        LOGGER.info("🧾 Processing %s ...", file_name)

        validate_pdf(pdf_path)
        raster = rasterize(pdf_path, ws.debug_path(file_name))

        classifier = ProviderClassifier(self.engine_factory, header_path=ws.debug_path(file_name, "_header"))
        provider = classifier.classify(pdf_path, raster)
        if provider is Provider.UNKNOWN:
            raise ClassificationUnknown(UNKNOWN_REGION)

        variant = resolve_variant(provider, raster, self.engine_factory, ws.debug_path(file_name, "_layout"))
        region = layout_key(provider, variant)
        LOGGER.info("Provider %s, layout %s", provider.value, region)

        template = ws.templates.load_key(region)
        result = self.extractor.extract(raster, template, file_name, provider, region)
        record = standardize(normalize(result))

        ws.write_record(record.to_dict(), file_name, region)
        LOGGER.info("✅ Extraction complete for %s", file_name)
        return record

    def run(self, pdf_path: Path, file_name: Optional[str] = None) -> Dict[str, Any]:
        """Like :meth:`process` but reports an unknown provider as a payload."""
        try:
            return self.process(pdf_path, file_name).to_dict()
        except ClassificationUnknown:
            LOGGER.warning("⚠️ Unknown region → skipping %s", file_name or Path(pdf_path).name)
            return {"error": UNKNOWN_REGION}

    def run_batch(self, paths: Iterable[Path], max_workers: Optional[int] = None) -> Dict[str, Dict[str, Any]]:
        """Process many bills in parallel; failures are reported per file."""
        paths = [Path(p) for p in paths]
        max_workers = max(1, min(max_workers or config.MAX_WORKER_THREADS, len(paths) or 1))
        LOGGER.info("📦 Processing %d bills with %d workers", len(paths), max_workers)

        results: Dict[str, Dict[str, Any]] = {}
        with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {executor.submit(self.run, path): path for path in paths}
            for future in concurrent.futures.as_completed(futures):
                path = futures[future]
                try:
                    results[path.name] = future.result()
                except Exception as e:
                    LOGGER.error("❌ %s failed: %s", path.name, e)
                    results[path.name] = {"error": str(e)}
        return {name: results[name] for name in sorted(results)}


def collect_pdfs(path: Path) -> List[Path]:
    if path.is_dir():
        return sorted(p for p in path.iterdir() if p.is_file() and p.suffix.lower() == ".pdf")
    return [path]


def main() -> None:
    logging.basicConfig(level=config.LOG_LEVEL, format="%(levelname)s %(message)s")

    if len(sys.argv) < 2:
        print("Usage: python pipeline.py <bill.pdf|folder> [--save outfile.json] [--workers N]")
        print("  --save: Save output to JSON file")
        print("  --workers: Parallel workers for folder input (default MAX_WORKER_THREADS)")
        sys.exit(1)

    target = Path(sys.argv[1])
    save_path = None
    workers = None

    try:
        if "--save" in sys.argv:
            save_path = Path(sys.argv[sys.argv.index("--save") + 1])
        if "--workers" in sys.argv:
            workers = int(sys.argv[sys.argv.index("--workers") + 1])
    except (ValueError, IndexError) as e:
        print(f"Error parsing arguments: {e}")
        sys.exit(1)

    if not target.exists():
        print(f"Error: '{target}' does not exist")
        sys.exit(1)

    pipeline = BillPipeline(Workspace.from_config().ensure())

    if target.is_dir():
        pdfs = collect_pdfs(target)
        if not pdfs:
            print(f"Error: no PDF files found in '{target}'")
            sys.exit(1)
        payload: Dict[str, Any] = pipeline.run_batch(pdfs, workers)
    else:
        try:
            payload = pipeline.run(target)
        except (ValueError, RuntimeError) as e:
            print(f"Error: {e}")
            sys.exit(1)

    if save_path:
        save_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False))
        print(f"Wrote {save_path}")

    print(json.dumps(payload, indent=2, ensure_ascii=False))
    if "error" in payload:
        sys.exit(1)


if __name__ == "__main__":
    main()
