import io
import os
import tempfile

import pytest
from fontTools.fontBuilder import FontBuilder
from fontTools.pens.ttGlyphPen import TTGlyphPen
from fontTools.ttLib import TTFont

# Keep generated artifacts out of the working tree; must run before text3d.config is imported.
os.environ["STORAGE_BACKEND"] = "local"
os.environ["ARTIFACT_DIR"] = tempfile.mkdtemp(prefix="text3d-test-")
os.environ["PUBLIC_BASE_URL"] = "http://testserver"
os.environ.setdefault("FONT_URL", "http://fonts.invalid/test.ttf")

UNITS_PER_EM = 1000


def _rect(pen, x0, y0, x1, y1, clockwise=True):
    points = [(x0, y0), (x0, y1), (x1, y1), (x1, y0)]
    if not clockwise:
        points.reverse()
    pen.moveTo(points[0])
    for pt in points[1:]:
        pen.lineTo(pt)
    pen.closePath()


def _draw_H(pen):
    _rect(pen, 50, 0, 150, 700)
    _rect(pen, 450, 0, 550, 700)
    _rect(pen, 100, 300, 500, 400)


def _draw_i(pen):
    _rect(pen, 50, 0, 150, 500)
    _rect(pen, 50, 600, 150, 700)


def _draw_o(pen):
    # Clockwise outer contour with quadratic corners, square counter wound the other way
    pen.moveTo((300, 0))
    pen.qCurveTo((50, 0), (50, 250))
    pen.qCurveTo((50, 500), (300, 500))
    pen.qCurveTo((550, 500), (550, 250))
    pen.qCurveTo((550, 0), (300, 0))
    pen.closePath()
    _rect(pen, 200, 150, 400, 350, clockwise=False)


GLYPHS = {
    ".notdef": (None, 500),
    "space": (None, 250),
    "H": (_draw_H, 600),
    "i": (_draw_i, 200),
    "o": (_draw_o, 600),
}

CHARACTER_MAP = {ord(" "): "space", ord("H"): "H", ord("i"): "i", ord("o"): "o"}


def build_test_font_bytes() -> bytes:
    """A tiny TrueType font covering ' ', 'H', 'i' and 'o'"""
    fb = FontBuilder(UNITS_PER_EM, isTTF=True)
    fb.setupGlyphOrder(list(GLYPHS))
    fb.setupCharacterMap(CHARACTER_MAP)

    glyphs, metrics = {}, {}
    for name, (draw, advance) in GLYPHS.items():
        pen = TTGlyphPen(None)
        if draw is not None:
            draw(pen)
        glyphs[name] = pen.glyph()
        metrics[name] = (advance, 0)

    fb.setupGlyf(glyphs)
    fb.setupHorizontalMetrics(metrics)
    fb.setupHorizontalHeader(ascent=800, descent=-200)
    fb.setupNameTable({"familyName": "Text3dTest", "styleName": "Regular"})
    fb.setupOS2(sTypoAscender=800, sTypoDescender=-200, usWinAscent=800, usWinDescent=200)
    fb.setupPost()

    buf = io.BytesIO()
    fb.save(buf)
    return buf.getvalue()


@pytest.fixture(scope="session")
def font_bytes():
    return build_test_font_bytes()


@pytest.fixture
def font(font_bytes):
    return TTFont(io.BytesIO(font_bytes))


class StubFontProvider:
    """Serves the in-memory test font, or raises the given error"""

    def __init__(self, font_bytes=None, error=None):
        self.font_bytes = font_bytes
        self.error = error
        self.calls = 0

    def load(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return TTFont(io.BytesIO(self.font_bytes))


@pytest.fixture
def stub_fonts(font_bytes):
    return StubFontProvider(font_bytes)
