"""Provider-specific post-processing of raw field OCR.

Every provider prints its bill differently; a chain turns the raw template
fields of one provider into a flat mapping whose keys the standardization
layer knows how to read.
"""

import logging
import re
from typing import Dict, Optional, Tuple

from extractor import day_count
from models import ExtractionResult, Provider

LOGGER = logging.getLogger(__name__)

MONEY = r"([0-9]+(?:[.,][0-9]{1,2})?)"
MONEY_RE = re.compile(MONEY)

IDENTIFIER_FIELDS = ("No. Bil", "No. Invois", "No. Akaun", "Nombor Akaun")


def money(text: Optional[str], pattern: re.Pattern = MONEY_RE, default: str = "0.00") -> str:
    """First amount captured by ``pattern``, with a decimal comma turned into a dot."""
    m = pattern.search(text or "")
    if not m:
        return default
    return m.group(1).replace(",", ".", 1)


def clean_identifier(value: str) -> str:
    value = re.sub(r"\s+", "", value)
    return re.sub(r"[^A-Za-z0-9\-]", "", value)


def clean_identifiers(fields: Dict[str, str]) -> Dict[str, str]:
    for key in IDENTIFIER_FIELDS:
        if fields.get(key):
            fields[key] = clean_identifier(fields[key])
    return fields


def period_between(start: str, end: str) -> Tuple[str, str]:
    days = day_count(start, end)
    if days is None:
        LOGGER.warning("Invalid billing period dates %s / %s", start, end)
        return "", ""
    return f"{start} - {end}", str(days)


class NormalizerChain:
    """Base class for per-provider field chains."""

    def normalize(self, result: ExtractionResult) -> Dict[str, str]:
        raise NotImplementedError


class PassThroughChain(NormalizerChain):
    """Selangor and Melaka templates already name fields canonically."""

    def normalize(self, result: ExtractionResult) -> Dict[str, str]:
        out = {
            "File Name": result.file_name,
            "Region": result.region,
            "Address Lines Count": str(result.address_lines),
            "Offset Applied (px)": str(result.offset_y),
        }
        out.update(result.fields)
        if result.period:
            out["Tempoh Bil"] = result.period
        if result.period_days:
            out["Bilangan Hari"] = result.period_days
        return out


class JohorChain(NormalizerChain):
    """Ranhill SAJ bills: most values sit inside multi-line text sections."""

    TUNGGAKAN_SECTION = "Tunggakan dan Tarikh Section"
    BIL_SEMASA_SECTION = "Jumlah Bil Semasa Section"
    METER_SECTION = "No Meter, Tarikh, Penggunaan(m3) Section"
    CAJ_AIR_SECTION = "Jumlah Caj Air Semasa Section"

    # optional date and stamp/reference code sit between label and amount
    TUNGGAKAN_RE = re.compile(
        r"TUNGGAKAN(?:\s+\d{2}/\d{2}/\d{2,4})?(?:\s+[A-Z0-9/]+)?\s+" + MONEY, re.I
    )
    TARIKH_RE = re.compile(r"JUMLAH\s+BIL\s+SEMASA\s+(\d{2})[/\-]?(\d{2})[/\-]?(\d{4})", re.I)
    BIL_SEMASA_RE = re.compile(r"JUMLAH\s+BIL\s+SEMASA[^0-9]*" + MONEY, re.I)
    CAJ_AIR_RE = re.compile(r"JUMLAH\s+CAJ\s+AIR\s+SEMASA[^0-9]*" + MONEY, re.I)
    # meter serial: whitespace-separated tokens after SAJ, stopping before the
    # dates or usage printed on the same line, or at the first punctuation
    METER_RE = re.compile(
        r"(SAJ(?:[ \t]*[0-9A-Z]+)(?:[ \t]+[0-9A-Z]+)*?)"
        r"(?=[ \t]+\d{2}[/\-]\d{2}[/\-]\d{4}|[ \t]+\d{1,4}\.\d{1,2}\b|[ \t]*$|[ \t]*[^0-9A-Z \t])",
        re.I | re.M,
    )
    USAGE_RE = re.compile(r"(\d{1,4}\.\d{1,2})\s*$")
    DATE_RE = re.compile(r"\d{2}[/\-]\d{2}[/\-]\d{4}")

    def normalize(self, result: ExtractionResult) -> Dict[str, str]:
        out = {
            "File Name": result.file_name,
            "Region": result.region,
            "No. Akaun": result.get("No. Akaun"),
            "No. Bil": result.get("No. Bil"),
            "Deposit": money(result.get("Deposit")),
        }

        section = result.get(self.TUNGGAKAN_SECTION)
        out["Tunggakan"] = money(section, self.TUNGGAKAN_RE)
        m = self.TARIKH_RE.search(section)
        if m:
            out["Tarikh"] = "/".join(m.groups())

        bil_semasa = ""
        if result.get(self.BIL_SEMASA_SECTION):
            bil_semasa = money(result.get(self.BIL_SEMASA_SECTION), self.BIL_SEMASA_RE, default="")
            if bil_semasa:
                out["Jumlah Bil Semasa"] = bil_semasa

        out.update(self._meter_section(result.get(self.METER_SECTION)))

        caj_air = money(result.get(self.CAJ_AIR_SECTION), self.CAJ_AIR_RE, default="")
        out["Jumlah Caj Air Semasa"] = caj_air or bil_semasa or "0.00"
        return out

    def _meter_section(self, text: str) -> Dict[str, str]:
        out = {}
        if not text:
            return out

        m = self.METER_RE.search(text)
        if m:
            out["No. Meter"] = re.sub(r"\s+", "", m.group(1))

        meter_line = next((line for line in text.split("\n") if "SAJ" in line.upper()), None)
        if meter_line is not None:
            usage = self.USAGE_RE.search(meter_line.strip())
            if usage:
                out["Penggunaan (m3)"] = usage.group(1)

        # the first date printed is the period end
        dates = self.DATE_RE.findall(text)
        if len(dates) >= 2:
            end, start = (d.replace("-", "/") for d in dates[:2])
            period, days = period_between(start, end)
            if period:
                out["Tempoh Bil"] = period
                out["Bilangan Hari"] = days
        return out


class KedahChain(NormalizerChain):
    """SADA bills print all three charges in one labelled block."""

    CHARGES_SECTION = "Jumlah Caj Semasa, Jumlah Tunggakan dan Jumlah Perlu Dibayar Section"

    @staticmethod
    def _labelled(label: str) -> re.Pattern:
        return re.compile(re.escape(label) + r"\s*:\s*RM\s*" + MONEY, re.I)

    def normalize(self, result: ExtractionResult) -> Dict[str, str]:
        section = result.get(self.CHARGES_SECTION)
        out = {
            "File Name": result.file_name,
            "Region": Provider.KEDAH.value,
            "Nombor Akaun": result.get("No. Akaun"),
            "No. Invois": result.get("No. Bil"),
            "Tarikh": result.get("Tarikh"),
            "Tempoh Bil": result.period or result.get("Tempoh Bil"),
            "Nombor Meter": result.get("No. Meter"),
            "Penggunaan Semasa": result.get("Penggunaan Semasa"),
            "Jumlah Caj Semasa": money(section, self._labelled("JUMLAH CAJ SEMASA")),
            "Jumlah Tunggakan": money(section, self._labelled("JUMLAH TUNGGAKAN")),
            "Jumlah Perlu Dibayar": money(section, self._labelled("JUMLAH PERLU DIBAYAR")),
            "Cagaran": result.get("Cagaran") or "0.00",
        }
        if result.period_days:
            out["Bilangan Hari"] = result.period_days
        return out


class NegeriSembilanChain(NormalizerChain):
    """SAINS bills carry both period boundaries in one text section."""

    PERIOD_SECTION = "Bilangan Hari Section"
    PERIOD_RE = re.compile(r"(\d{2})[-/](\d{2})[-/](\d{4}).*?(\d{2})[-/](\d{2})[-/](\d{4})", re.S)
    NUMBER_RE = re.compile(r"(\d+(?:[.,]\d+)?)")

    def normalize(self, result: ExtractionResult) -> Dict[str, str]:
        out = {
            "No. Akaun": result.get("No. Akaun"),
            "No. Invois": result.get("No. Bil"),
            "Tarikh": result.get("Tarikh").replace("-", "/").strip(),
            "Tempoh Bil": "",
            "Bilangan Hari": "",
        }

        m = self.PERIOD_RE.search(result.get(self.PERIOD_SECTION))
        if m:
            start = "/".join(m.groups()[:3])
            end = "/".join(m.groups()[3:])
            out["Tempoh Bil"], out["Bilangan Hari"] = period_between(start, end)

        out["Penggunaan"] = money(result.get("Penggunaan"), self.NUMBER_RE, default="0")
        out["Deposit"] = money(result.get("Deposit"))
        out["No. Meter"] = result.get("No. Meter")
        out["Caj Semasa"] = result.get("Caj Semasa") or "0.00"
        out["Tunggakan"] = result.get("Tunggakan") or "0.00"
        out["Jumlah Perlu Dibayar"] = result.get("Jumlah Perlu Dibayar") or "0.00"
        out["File Name"] = result.file_name
        out["Region"] = result.region
        return out


CHAINS: Dict[Provider, NormalizerChain] = {
    Provider.SELANGOR: PassThroughChain(),
    Provider.MELAKA: PassThroughChain(),
    Provider.JOHOR: JohorChain(),
    Provider.KEDAH: KedahChain(),
    Provider.NEGERI_SEMBILAN: NegeriSembilanChain(),
}


def normalize(result: ExtractionResult) -> Dict[str, str]:
    try:
        chain = CHAINS[result.provider]
    except KeyError:
        raise ValueError(f"No normalizer chain for provider: {result.provider}")
    LOGGER.debug("Normalizing %s with %s", result.file_name, type(chain).__name__)
    return clean_identifiers(chain.normalize(result))
