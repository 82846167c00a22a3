import pytest
from PIL import Image

from pageocr.engine import parse_engine_output
from pageocr.ocr_backends import tesseract_backend
from pageocr.ocr_backends.tesseract_backend import TesseractOCREngine, words_to_text

# image_to_data output for "Hello world" on one line and "Bye" in a second paragraph,
# with the layout rows tesseract reports as conf -1
DATA = {
    "text": ["", "", "", "Hello", "world", "", "", "Bye"],
    "conf": ["-1", "-1", "-1", "96.4", "88", "-1", "-1", "70"],
    "block_num": [1, 1, 1, 1, 1, 1, 1, 1],
    "par_num": [0, 1, 1, 1, 1, 2, 2, 2],
    "line_num": [0, 0, 1, 1, 1, 0, 1, 1],
    "left": [0, 0, 0, 10, 60, 0, 0, 10],
    "top": [0, 0, 0, 5, 5, 0, 0, 40],
    "width": [0, 0, 0, 40, 45, 0, 0, 30],
    "height": [0, 0, 0, 12, 12, 0, 0, 12],
}


@pytest.fixture
def fake_tesseract(monkeypatch):
    calls = {}

    def image_to_data(image, lang, config, output_type):
        calls["lang"] = lang
        calls["config"] = config
        return DATA

    monkeypatch.setattr(tesseract_backend.pt, "get_tesseract_version", lambda: "5.3.0")
    monkeypatch.setattr(tesseract_backend.pt, "get_languages", lambda config="": ["eng", "fra", "osd"])
    monkeypatch.setattr(tesseract_backend.pt, "image_to_data", image_to_data)
    monkeypatch.setattr(tesseract_backend, "resolve_tesseract_cmd", lambda: None)
    return calls


def test_words_to_text_groups_lines_and_paragraphs():
    assert words_to_text(DATA) == "Hello world\n\nBye"


def test_tesseract_engine_output_validates(fake_tesseract):
    engine = TesseractOCREngine(language="en+fra", psm=6)
    raw = engine.recognize(Image.new("RGB", (10, 10)))

    assert fake_tesseract["lang"] == "eng+fra"
    assert "--psm 6" in fake_tesseract["config"]
    assert raw["text"] == "Hello world\n\nBye"
    assert [w["text"] for w in raw["words"]] == ["Hello", "world", "Bye"]
    assert raw["words"][0]["bbox"] == {"x0": 10, "y0": 5, "x1": 50, "y1": 17}

    assert raw["words"][0]["confidence"] == pytest.approx(0.964)

    result = parse_engine_output(raw, "eng+fra")
    assert result.confidence == 85
    assert [w.confidence for w in result.words] == [96, 88, 70]


def test_tesseract_missing_language_data(fake_tesseract):
    with pytest.raises(RuntimeError, match="deu"):
        TesseractOCREngine(language="deu")


def test_tesseract_low_scores_stay_low(fake_tesseract, monkeypatch):
    data = {
        "text": ["smudge"], "conf": ["1"], "block_num": [1], "par_num": [1], "line_num": [1],
        "left": [0], "top": [0], "width": [8], "height": [8],
    }
    monkeypatch.setattr(tesseract_backend.pt, "image_to_data", lambda *a, **kw: data)

    raw = TesseractOCREngine().recognize(Image.new("RGB", (10, 10)))
    result = parse_engine_output(raw, "eng")

    assert result.confidence == 1
    assert result.words[0].confidence == 1


class _StubReader:
    init_args = None

    def __init__(self, langs, **kwargs):
        _StubReader.init_args = (langs, kwargs)

    def readtext(self, image, **kwargs):
        assert image.shape == (10, 20, 3)
        return [
            ([[10, 5], [50, 5], [50, 17], [10, 17]], "Hello", 0.95),
            ([[12.5, 30], [40, 28], [41, 42], [12, 44]], "world", 0.55),
        ]


def test_easyocr_engine_maps_detections(monkeypatch, tmp_path):
    easyocr_backend = pytest.importorskip("pageocr.ocr_backends.easyocr_backend")
    monkeypatch.setattr(easyocr_backend.easyocr, "Reader", _StubReader)

    engine = easyocr_backend.EasyOCREngine(
        language="eng+vie", gpu=False, model_storage_directory=str(tmp_path),
    )
    raw = engine.recognize(Image.new("L", (20, 10)))

    langs, kwargs = _StubReader.init_args
    assert langs == ["en", "vi"]
    assert kwargs["gpu"] is False
    assert raw["text"] == "Hello\nworld"
    assert raw["confidence"] == pytest.approx(0.75)
    assert raw["words"][1]["bbox"] == {"x0": 12.0, "y0": 28.0, "x1": 41.0, "y1": 44.0}
    assert not (tmp_path / "model_init.lock").exists()

    result = parse_engine_output(raw, "eng+vie")
    assert result.confidence == 75
    assert [w.confidence for w in result.words] == [95, 55]
    assert result.words[0].bbox == (10.0, 5.0, 50.0, 17.0)

    engine.close()
    assert engine.reader is None
