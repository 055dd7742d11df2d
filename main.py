#!/usr/bin/env python3
"""FastAPI web service for water bill extraction.

POST a PDF bill to /extract and get the canonical billing record back.
Debug renders and saved records are served from /debug_text and /output.
"""

import logging
import tempfile
from pathlib import Path
from typing import Optional

import uvicorn
from fastapi import FastAPI, File, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles

import config
from classifier import ClassificationUnknown
from pipeline import UNKNOWN_REGION, BillPipeline, InvalidDocument
from workspace import Workspace

logging.basicConfig(level=config.LOG_LEVEL, format="%(levelname)s %(message)s")
logger = logging.getLogger(__name__)

workspace = Workspace.from_config().ensure()
pipeline = BillPipeline(workspace)

app = FastAPI(
    title="Water Bill Extraction API",
    description="Template-driven field extraction for Malaysian water utility bills",
    version="1.0.0",
)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

app.mount("/debug_text", StaticFiles(directory=str(workspace.debug_dir)), name="debug_text")
app.mount("/output", StaticFiles(directory=str(workspace.output_dir)), name="output")


@app.get("/", response_class=PlainTextResponse)
async def root():
    return "💧 Water Bill Extraction API is running"


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "water-bill-extraction", "ocr_backend": config.OCR_BACKEND}


@app.post("/extract")
async def extract(file: Optional[UploadFile] = File(None)):
    """Extract the canonical record from an uploaded PDF bill.

    Returns:
        200 with the record, 400 for a missing or non-PDF upload, 422 when
        the provider cannot be recognised and 500 for anything else.
    """
    if file is None:
        return JSONResponse(status_code=400, content={"error": "No file uploaded"})

    file_name = file.filename or "upload.pdf"
    with tempfile.NamedTemporaryFile(delete=False, suffix=".pdf") as tmp_file:
        content = await file.read()
        tmp_file.write(content)
        tmp_file_path = Path(tmp_file.name)

    logger.info("📄 Received file: %s (%d bytes)", file_name, len(content))
    try:
        record = await run_in_threadpool(pipeline.process, tmp_file_path, file_name)
        logger.info("✅ Extraction complete for %s", file_name)
        return JSONResponse(content=record.to_dict())
    except ClassificationUnknown:
        return JSONResponse(status_code=422, content={"error": UNKNOWN_REGION})
    except InvalidDocument as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    except Exception as e:
        logger.error("❌ Extraction failed for %s: %s", file_name, e)
        return JSONResponse(status_code=500, content={"error": str(e)})
    finally:
        try:
            tmp_file_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Failed to clean up temp file: %s", e)


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=config.PORT,
        reload=False,
        log_level=config.LOG_LEVEL.lower(),
    )
