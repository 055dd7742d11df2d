import json
import sys, pathlib
from unittest import mock

import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))
import pipeline
from classifier import ClassificationUnknown
from pipeline import BillPipeline, InvalidDocument, collect_pdfs, validate_pdf

SELANGOR_TEXT = "Pengurusan Air Selangor Sdn Bhd. " + "Bil air bulanan untuk akaun domestik anda. " * 3
ADDRESS_BOX = {"x": 100, "y": 500, "w": 900, "h": 300}


@pytest.fixture
def pdf(tmp_path):
    path = tmp_path / "bill.pdf"
    path.write_bytes(b"%PDF-1.4\n%%EOF\n")
    return path


def selangor_responder(layout_text):
    def respond(image, psm):
        if image.size == (800, 250):
            return layout_text
        if image.size == (900, 300):
            return "NO 5 JALAN 2\n43000 KAJANG\nSELANGOR"
        return ""
    return respond


class TestValidatePdf:
    def test_accepts_pdf_header(self, pdf):
        validate_pdf(pdf)

    def test_missing_file(self, tmp_path):
        with pytest.raises(InvalidDocument, match="does not exist"):
            validate_pdf(tmp_path / "nope.pdf")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.pdf"
        path.write_bytes(b"")
        with pytest.raises(InvalidDocument, match="empty"):
            validate_pdf(path)

    def test_not_a_pdf(self, tmp_path):
        path = tmp_path / "photo.pdf"
        path.write_bytes(b"\x89PNG\r\n\x1a\n0000")
        with pytest.raises(ValueError, match="not a valid PDF"):
            validate_pdf(path)


class TestBillPipeline:
    def test_selangor_address_only_template(self, pdf, raster, workspace, fake_engines):
        workspace.templates_dir.mkdir(parents=True)
        (workspace.templates_dir / "Selangor.json").write_text(json.dumps({"Address": ADDRESS_BOX}))
        factory = fake_engines(selangor_responder("No. Akaun Baharu"))

        with mock.patch.object(pipeline, "rasterize", return_value=raster), \
                mock.patch("classifier.extract_embedded_text", return_value=SELANGOR_TEXT):
            record = BillPipeline(workspace, factory).run(pdf, "bill.pdf")

        assert record["Region"] == "Selangor"
        assert record["File_Name"] == "bill.pdf"
        assert record["Tempoh_Bil"] == ""
        assert record["Bilangan_Hari"] == ""
        assert record["Caj_Semasa"] == "0.00"
        saved = json.loads((workspace.output_dir / "bill_Selangor.json").read_text())
        assert saved == record
        # layout sample and extraction each used and released their own engine
        assert len(factory.engines) == 2
        assert all(engine.closed for engine in factory.engines)

    def test_selangor_dual_layout_creates_template(self, pdf, raster, workspace, fake_engines):
        factory = fake_engines(selangor_responder("No. Akaun Baharu  No. Akaun Lama"))

        with mock.patch.object(pipeline, "rasterize", return_value=raster), \
                mock.patch("classifier.extract_embedded_text", return_value=SELANGOR_TEXT):
            record = BillPipeline(workspace, factory).run(pdf)

        assert record["Region"] == "Selangor2"
        assert json.loads((workspace.templates_dir / "Selangor2.json").read_text()) == {}
        assert (workspace.output_dir / "bill_Selangor2.json").exists()

    def test_unknown_region_skips_extraction(self, pdf, raster, workspace, fake_engines):
        bills = BillPipeline(workspace, fake_engines("Tenaga Nasional Berhad"))

        with mock.patch.object(pipeline, "rasterize", return_value=raster), \
                mock.patch("classifier.extract_embedded_text", return_value=""), \
                mock.patch.object(bills.extractor, "extract") as extract:
            assert bills.run(pdf, "bill.pdf") == {"error": "Unknown region"}
            with pytest.raises(ClassificationUnknown):
                bills.process(pdf, "bill.pdf")

        extract.assert_not_called()
        assert not workspace.output_dir.exists() or not any(workspace.output_dir.iterdir())

    def test_invalid_document_is_raised(self, tmp_path, workspace, fake_engines):
        path = tmp_path / "notes.pdf"
        path.write_text("hello")
        with pytest.raises(InvalidDocument):
            BillPipeline(workspace, fake_engines()).run(path)

    def test_run_batch_reports_failures_per_file(self, workspace, fake_engines):
        bills = BillPipeline(workspace, fake_engines())

        def fake_run(path, file_name=None):
            if path.name == "b.pdf":
                raise RuntimeError("PDF processing failed")
            return {"File_Name": path.name}

        with mock.patch.object(bills, "run", side_effect=fake_run):
            results = bills.run_batch([pathlib.Path("c.pdf"), pathlib.Path("a.pdf"), pathlib.Path("b.pdf")], max_workers=2)

        assert list(results) == ["a.pdf", "b.pdf", "c.pdf"]
        assert results["a.pdf"] == {"File_Name": "a.pdf"}
        assert results["b.pdf"] == {"error": "PDF processing failed"}


def test_collect_pdfs(tmp_path):
    for name in ("a.pdf", "B.PDF", "notes.txt"):
        (tmp_path / name).write_bytes(b"%PDF-")
    assert sorted(p.name for p in collect_pdfs(tmp_path)) == ["B.PDF", "a.pdf"]
    assert collect_pdfs(tmp_path / "a.pdf") == [tmp_path / "a.pdf"]


class TestCli:
    def test_single_file(self, pdf, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        out_file = tmp_path / "out.json"
        monkeypatch.setattr(sys, "argv", ["pipeline.py", str(pdf), "--save", str(out_file)])

        with mock.patch.object(BillPipeline, "run", return_value={"Region": "Melaka"}):
            pipeline.main()

        assert json.loads(out_file.read_text()) == {"Region": "Melaka"}
        assert '"Region": "Melaka"' in capsys.readouterr().out

    def test_unknown_region_exits_nonzero(self, pdf, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(sys, "argv", ["pipeline.py", str(pdf)])

        with mock.patch.object(BillPipeline, "run", return_value={"error": "Unknown region"}):
            with pytest.raises(SystemExit) as exc:
                pipeline.main()
        assert exc.value.code == 1

    def test_missing_path(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(sys, "argv", ["pipeline.py", str(tmp_path / "missing.pdf")])
        with pytest.raises(SystemExit):
            pipeline.main()
