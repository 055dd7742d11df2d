"""Folders a pipeline run reads templates from and writes artifacts to."""

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

import config
from templates import TemplateRegistry

LOGGER = logging.getLogger(__name__)


def base_name(file_name: str) -> str:
    """Display name without directories or a trailing .pdf extension."""
    name = Path(file_name).name
    if name.lower().endswith(".pdf"):
        name = name[:-4]
    return name


def field_file_name(field: str) -> str:
    return re.sub(r"\s+", "_", field.strip())


@dataclass
class Workspace:
    templates_dir: Path
    output_dir: Path
    debug_dir: Path

    @classmethod
    def from_config(cls, root: Optional[Union[str, Path]] = None) -> "Workspace":
        root = Path(root) if root is not None else Path(".")
        return cls(
            templates_dir=root / config.TEMPLATES_DIR,
            output_dir=root / config.OUTPUT_DIR,
            debug_dir=root / config.DEBUG_DIR,
        )

    def __post_init__(self):
        self.templates_dir = Path(self.templates_dir)
        self.output_dir = Path(self.output_dir)
        self.debug_dir = Path(self.debug_dir)
        self.templates = TemplateRegistry(self.templates_dir)

    def ensure(self) -> "Workspace":
        for directory in (self.templates_dir, self.output_dir, self.debug_dir, self.crops_dir):
            directory.mkdir(parents=True, exist_ok=True)
        return self

    @property
    def crops_dir(self) -> Path:
        return self.debug_dir / "crops"

    def debug_path(self, file_name: str, suffix: str = "") -> Path:
        self.debug_dir.mkdir(parents=True, exist_ok=True)
        return self.debug_dir / f"{base_name(file_name)}{suffix}.png"

    def crop_path(self, file_name: str, field: str) -> Path:
        directory = self.crops_dir / base_name(file_name)
        directory.mkdir(parents=True, exist_ok=True)
        return directory / f"{field_file_name(field)}.png"

    def output_path(self, file_name: str, region: str) -> Path:
        return self.output_dir / f"{base_name(file_name)}_{region}.json"

    def write_record(self, record: Dict[str, Any], file_name: str, region: str) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        out = self.output_path(file_name, region)
        out.write_text(json.dumps(record, indent=2, ensure_ascii=False), encoding="utf-8")
        LOGGER.info("Standardized JSON saved → %s", out)
        return out
