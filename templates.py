"""Field-geometry templates, one JSON file per provider layout."""

import json
import logging
from pathlib import Path
from typing import Dict

from models import Box, Provider, Template, Variant, layout_key

LOGGER = logging.getLogger(__name__)


class TemplateRegistry:
    """Loads templates from disk, creating an empty one for unseen layouts.

    Template files hold ``{"Field name": {"x":..,"y":..,"w":..,"h":..}}`` in
    design coordinates. They are authored outside this program; an empty
    template simply extracts nothing.
    """

    def __init__(self, templates_dir: Path):
        self.templates_dir = Path(templates_dir)

    def path_for(self, key: str) -> Path:
        return self.templates_dir / f"{key}.json"

    def load(self, provider: Provider, variant: Variant = Variant.SINGLE) -> Template:
        return self.load_key(layout_key(provider, variant))

    def load_key(self, key: str) -> Template:
        path = self.path_for(key)
        if not path.exists():
            self._create_empty(path)

        try:
            raw = json.loads(path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as e:
            raise ValueError(f"Template '{path.name}' is not valid JSON: {e}")
        if not isinstance(raw, dict):
            raise ValueError(f"Template '{path.name}' must be a JSON object")

        return Template(key=key, fields=self._parse_fields(key, raw))

    def _create_empty(self, path: Path) -> None:
        self.templates_dir.mkdir(parents=True, exist_ok=True)
        try:
            with open(path, "x", encoding="utf-8") as f:
                json.dump({}, f, indent=2)
            LOGGER.info("New layout %s: created empty template %s", path.stem, path)
        except FileExistsError:
            # another worker created it first
            pass

    @staticmethod
    def _parse_fields(key: str, raw: Dict) -> Dict[str, Box]:
        fields = {}
        for name, value in raw.items():
            try:
                fields[name] = Box.from_dict(value)
            except (KeyError, TypeError, ValueError) as e:
                LOGGER.warning("Template %s: skipping field %r with invalid box (%s)", key, name, e)
        return fields
