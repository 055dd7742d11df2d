"""Map provider-specific field names onto the canonical bill record."""

import logging
import re
from typing import Any, Mapping, Optional, Sequence

from models import NormalizedRecord

LOGGER = logging.getLogger(__name__)

# attribute -> (aliases probed in order, default)
ALIASES = {
    "file_name": (("File Name", "File_Name"), ""),
    "region": (("Region",), ""),
    "invoice_number": (("No. Invois", "No. Bil", "No_Invois", "No_Bil"), ""),
    "account_number": (("No. Akaun", "Nombor Akaun", "Nombor_Akaun"), ""),
    "billing_date": (("Tarikh",), ""),
    "billing_period": (("Tempoh Bil", "Tempoh_Bil"), ""),
    "period_days": (("Bilangan Hari", "Bilangan_Hari"), ""),
    "meter_number": (("No. Meter", "Nombor Meter", "Nombor_Meter"), ""),
    "usage": (("Penggunaan", "Penggunaan (m3)", "Penggunaan Semasa"), "0"),
    "current_charge": (("Caj Semasa", "Jumlah Bil Semasa", "Jumlah Caj Semasa", "Jumlah Caj Air Semasa"), "0.00"),
    "arrears": (("Tunggakan", "Jumlah Tunggakan", "Baki Terdahulu"), "0.00"),
    "total_payable": (("Jumlah Perlu Dibayar", "Jumlah_Perlu_Dibayar"), "0.00"),
    "deposit": (("Deposit", "Cagaran"), "0.00"),
}


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def first_of(fields: Mapping[str, Any], aliases: Sequence[str], default: str = "") -> str:
    for alias in aliases:
        value = _text(fields.get(alias))
        if value:
            return value
    return default


def clean_amount(value: Optional[Any]) -> str:
    """Loose money cleanup used for raw ``Bil Semasa`` values."""
    value = _text(value)
    if not value:
        return "0.00"
    return re.sub(r"[^\d.,-]", "", value).replace(",", ".", 1) or "0.00"


def standardize(fields: Optional[Mapping[str, Any]]) -> NormalizedRecord:
    fields = fields or {}
    values = {attr: first_of(fields, aliases, default) for attr, (aliases, default) in ALIASES.items()}

    values["billing_date"] = values["billing_date"].replace("-", "/").strip()
    if not first_of(fields, ALIASES["current_charge"][0]):
        values["current_charge"] = clean_amount(fields.get("Bil Semasa"))

    record = NormalizedRecord(**values)
    LOGGER.debug("Standardized record for %s: %s", record.file_name, record)
    return record
