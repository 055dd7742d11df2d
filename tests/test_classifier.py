import sys, pathlib
from unittest import mock

import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
import classifier
from classifier import ProviderClassifier, header_box, match_signature
from models import Provider

FILLER = " Sila bayar sebelum tarikh akhir. Terima kasih kerana menggunakan perkhidmatan kami." * 2


@pytest.mark.parametrize(
    "text,expected",
    [
        ("Pengurusan Air Selangor Sdn Bhd", Provider.SELANGOR),
        ("AIR\nSELANGOR", Provider.SELANGOR),
        ("Syarikat Air Melaka Berhad", Provider.MELAKA),
        ("bil SAMB bulanan", Provider.MELAKA),
        ("Syarikat Air Negeri Sembilan", Provider.NEGERI_SEMBILAN),
        ("SAINS", Provider.NEGERI_SEMBILAN),
        ("Syarikat Air Darul Aman", Provider.KEDAH),
        ("SADA", Provider.KEDAH),
        ("Ranhill SAJ Sdn Bhd", Provider.JOHOR),
        ("Johor Darul Ta'zim", Provider.JOHOR),
        ("Tenaga Nasional Berhad", Provider.UNKNOWN),
        ("", Provider.UNKNOWN),
        (None, Provider.UNKNOWN),
    ],
)
def test_match_signature(text, expected):
    assert match_signature(text) is expected


@pytest.mark.parametrize(
    "text,expected",
    [
        ("saj reference, Air Selangor", Provider.SELANGOR),
        ("SAJ copy - Syarikat Air Darul Aman", Provider.KEDAH),
        ("Pusat bayaran SAJ | SAINS", Provider.NEGERI_SEMBILAN),
    ],
)
def test_johor_rule_is_evaluated_last(text, expected):
    assert match_signature(text) is expected


def test_header_box_is_capped():
    class R:
        width, height = 2481, 3509

    assert header_box(R()).to_dict() == {"x": 0, "y": 0, "w": 2481, "h": 400}

    R.height = 1000
    assert header_box(R()).h == 250


class TestProviderClassifier:
    def test_embedded_text_needs_no_ocr(self, raster, fake_engines):
        factory = fake_engines("should not be used")
        with mock.patch.object(classifier, "extract_embedded_text", return_value="Air Selangor" + FILLER):
            provider = ProviderClassifier(factory).classify(pathlib.Path("bill.pdf"), raster)
        assert provider is Provider.SELANGOR
        assert factory.engines == []

    def test_short_text_falls_through_to_full_page_ocr(self, raster, fake_engines):
        factory = fake_engines(["Syarikat Air Melaka Berhad"])
        with mock.patch.object(classifier, "extract_embedded_text", return_value="Air Selangor"):
            provider = ProviderClassifier(factory).classify(pathlib.Path("bill.pdf"), raster)
        assert provider is Provider.MELAKA
        (image, psm), = factory.calls
        assert image.size == (raster.width, raster.height)

    def test_header_crop_detects_johor(self, raster, fake_engines, tmp_path):
        factory = fake_engines(["unreadable scan", "RANHILL SAJ SDN BHD"])
        header_path = tmp_path / "bill_header.png"
        with mock.patch.object(classifier, "extract_embedded_text", return_value=""):
            provider = ProviderClassifier(factory, header_path=header_path).classify(pathlib.Path("bill.pdf"), raster)
        assert provider is Provider.JOHOR
        assert header_path.exists()
        assert factory.calls[1][0].size == (raster.width, 400)
        # one engine for both OCR tiers, released afterwards
        assert len(factory.engines) == 1
        assert factory.engines[0].closed

    def test_unmatched_embedded_text_goes_to_header_tier(self, raster, fake_engines):
        factory = fake_engines(["Johor"])
        with mock.patch.object(classifier, "extract_embedded_text", return_value="Invoice" + FILLER):
            provider = ProviderClassifier(factory).classify(pathlib.Path("bill.pdf"), raster)
        assert provider is Provider.JOHOR
        assert len(factory.calls) == 1

    def test_header_failure_degrades_to_unknown(self, raster, fake_engines):
        factory = fake_engines(["nothing here", RuntimeError("tesseract crashed")])
        with mock.patch.object(classifier, "extract_embedded_text", return_value=""):
            provider = ProviderClassifier(factory).classify(pathlib.Path("bill.pdf"), raster)
        assert provider is Provider.UNKNOWN
        assert factory.engines[0].closed

    def test_nothing_matches(self, raster, fake_engines):
        factory = fake_engines("Tenaga Nasional")
        with mock.patch.object(classifier, "extract_embedded_text", return_value=""):
            assert classifier.classify(pathlib.Path("bill.pdf"), raster, factory) is Provider.UNKNOWN
