import sys
import pathlib
from contextlib import contextmanager

import pytest
from PIL import Image

# Add repository root to path so tests can import modules directly
sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

import config
from engine import EngineInterface
from ocr import OcrResult
from rasterizer import Raster
from workspace import Workspace


class FakeEngine(EngineInterface):
    """Answers recognize() from a shared responder instead of running OCR."""

    name = "fake"

    def __init__(self, responder):
        self.responder = responder
        self.calls = []
        self.closed = False

    def recognize(self, image, psm=None):
        assert not self.closed, "engine used after release"
        self.calls.append((image, psm))
        text = self.responder(image, psm)
        if isinstance(text, Exception):
            raise text
        tokens = text.split()
        return OcrResult(text=text, tokens=tokens, confidences=[0.9] * len(tokens), engine=self.name)

    def close(self):
        self.closed = True


class FakeEngineFactory:
    """Engine factory handing out a fresh FakeEngine per acquisition.

    ``texts`` is a constant string, a list consumed in call order across all
    engines (exhausted lists answer ""), or a callable ``(image, psm) -> str``.
    """

    def __init__(self, texts=""):
        self.engines = []
        if callable(texts):
            self._respond = texts
        elif isinstance(texts, (list, tuple)):
            queue = list(texts)
            self._respond = lambda image, psm: queue.pop(0) if queue else ""
        else:
            self._respond = lambda image, psm: texts

    @contextmanager
    def __call__(self):
        engine = FakeEngine(self._respond)
        self.engines.append(engine)
        try:
            yield engine
        finally:
            engine.close()

    @property
    def calls(self):
        return [call for engine in self.engines for call in engine.calls]


@pytest.fixture
def fake_engines():
    return FakeEngineFactory


@pytest.fixture
def raster():
    return Raster(image=Image.new("RGB", (config.DESIGN_WIDTH, config.DESIGN_HEIGHT), "white"))


@pytest.fixture
def workspace(tmp_path):
    return Workspace(
        templates_dir=tmp_path / "templates",
        output_dir=tmp_path / "output",
        debug_dir=tmp_path / "debug_text",
    )
