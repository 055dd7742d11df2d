"""Data model shared by every stage of the extraction pipeline."""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

ADDRESS_FIELD = "Address"


class Provider(str, Enum):
    """Regional water utilities with a known bill layout."""

    SELANGOR = "Selangor"
    MELAKA = "Melaka"
    NEGERI_SEMBILAN = "Negeri-Sembilan"
    KEDAH = "Kedah"
    JOHOR = "Johor"
    UNKNOWN = "unknown"


class Variant(str, Enum):
    SINGLE = "single"
    DUAL = "dual"


def layout_key(provider: Provider, variant: Variant = Variant.SINGLE) -> str:
    """Stable template key: ``Selangor`` for single layouts, ``Selangor2`` for dual."""
    if variant is Variant.DUAL:
        return f"{provider.value}2"
    return provider.value


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class Box:
    """Axis-aligned rectangle; x/y is the top-left corner."""

    x: float
    y: float
    w: float
    h: float

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Box":
        return cls(
            x=float(data["x"]),
            y=float(data["y"]),
            w=float(data["w"]),
            h=float(data["h"]),
        )

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "w": self.w, "h": self.h}

    def scaled(self, scale_x: float, scale_y: float, offset_y: float = 0) -> "Box":
        """Map a normalized box onto a raster; the offset is in normalized pixels."""
        return Box(
            x=_round_half_up(self.x * scale_x),
            y=_round_half_up((self.y + offset_y) * scale_y),
            w=_round_half_up(self.w * scale_x),
            h=_round_half_up(self.h * scale_y),
        )

    @property
    def corners(self) -> Tuple[int, int, int, int]:
        """(left, top, right, bottom) in integer pixels."""
        left, top = int(self.x), int(self.y)
        return left, top, left + int(self.w), top + int(self.h)


@dataclass
class Template:
    """Field geometry for one provider layout, in normalized coordinates."""

    key: str
    fields: Dict[str, Box] = field(default_factory=dict)

    @property
    def address(self) -> Optional[Box]:
        return self.fields.get(ADDRESS_FIELD)

    def regions(self) -> Iterator[Tuple[str, Box]]:
        """Every field except the address block, in template order."""
        for name, box in self.fields.items():
            if name != ADDRESS_FIELD:
                yield name, box

    def is_empty(self) -> bool:
        return not self.fields


@dataclass
class ExtractionResult:
    """Raw per-field OCR text for one document under one template."""

    file_name: str
    provider: Provider
    region: str
    fields: Dict[str, str] = field(default_factory=dict)
    address_lines: int = 6
    offset_y: int = 0
    period: str = ""
    period_days: str = ""

    def get(self, name: str) -> str:
        return self.fields.get(name, "") or ""


# Canonical JSON key for every NormalizedRecord attribute, in output order
RECORD_KEYS = (
    ("file_name", "File_Name"),
    ("region", "Region"),
    ("invoice_number", "No_Invois"),
    ("account_number", "No_Akaun"),
    ("billing_date", "Tarikh"),
    ("billing_period", "Tempoh_Bil"),
    ("period_days", "Bilangan_Hari"),
    ("meter_number", "No_Meter"),
    ("usage", "Penggunaan"),
    ("current_charge", "Caj_Semasa"),
    ("arrears", "Tunggakan"),
    ("total_payable", "Jumlah_Perlu_Dibayar"),
    ("deposit", "Deposit"),
)


@dataclass
class NormalizedRecord:
    """Provider-agnostic billing record returned to callers."""

    file_name: str = ""
    region: str = ""
    invoice_number: str = ""
    account_number: str = ""
    billing_date: str = ""
    billing_period: str = ""
    period_days: str = ""
    meter_number: str = ""
    usage: str = "0"
    current_charge: str = "0.00"
    arrears: str = "0.00"
    total_payable: str = "0.00"
    deposit: str = "0.00"

    def to_dict(self) -> Dict[str, str]:
        return {key: getattr(self, attr) for attr, key in RECORD_KEYS}
