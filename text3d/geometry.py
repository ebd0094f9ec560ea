"""
Scene Builder
Turns a string into a centered, extruded and beveled text mesh using
fontTools outlines, shapely polygons and trimesh extrusion

Characters missing from the font are dropped silently. If nothing is left to
draw (only whitespace or unsupported characters), EmptyTextError is raised and
the HTTP layer answers 400 instead of exporting an empty mesh.
"""
import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np
import trimesh
from fontTools.pens.basePen import BasePen
from fontTools.ttLib import TTFont
from shapely.errors import ShapelyError
from shapely.geometry import MultiPolygon, Polygon
from shapely.ops import unary_union

from .errors import EmptyTextError, GeometryError

logger = logging.getLogger(__name__)

# Text geometry settings
TEXT_SIZE = 0.8          # Em height in scene units
CURVE_SEGMENTS = 12      # Line segments per font curve
BEVEL_THICKNESS = 0.025
BEVEL_SIZE = 0.025
BEVEL_SEGMENTS = 5

MESH_NAME = "AnimatedText"

# Animation settings
ROTATION_CLIP_NAME = "rotate"
ROTATION_DURATION = 10.0  # seconds per full turn
ROTATION_STEPS = 4        # keyframes per turn (quarter turns)


@dataclass(frozen=True)
class Material:
    """Fixed PBR material applied to the text"""
    name: str = "TextMaterial"
    color: str = "#4a90e2"
    emissive: str = "#4a90e2"
    emissive_intensity: float = 0.2
    roughness: float = 0.3
    metalness: float = 0.4


@dataclass(frozen=True)
class DirectionalLight:
    name: str
    intensity: float
    position: Tuple[float, float, float]
    color: Tuple[float, float, float] = (1.0, 1.0, 1.0)


DEFAULT_LIGHTS = (
    DirectionalLight("KeyLight", 0.6, (1.0, 1.0, 1.0)),
    DirectionalLight("SideLight", 0.3, (-1.0, 0.5, 0.5)),
)


@dataclass
class RotationClip:
    """Keyframed rotation about the vertical axis; quaternions are xyzw"""
    name: str
    times: np.ndarray
    rotations: np.ndarray

    @property
    def duration(self) -> float:
        return float(self.times[-1])


@dataclass
class TextScene:
    """Everything the exporter needs to write one text model"""
    text: str
    mesh: trimesh.Trimesh
    scale: float
    name: str = MESH_NAME
    material: Material = field(default_factory=Material)
    animation: Optional[RotationClip] = None
    lights: Tuple[DirectionalLight, ...] = DEFAULT_LIGHTS


def text_scale(text: str) -> float:
    """Uniform scale that keeps long strings at a similar apparent size"""
    return 1.0 / math.sqrt(len(text) / 10.0 + 1.0)


def rotation_clip(duration: float = ROTATION_DURATION, steps: int = ROTATION_STEPS) -> RotationClip:
    """
    Build a single full turn about +Y.

    A two-key clip from identity to 360 degrees would be slerped along the
    shortest arc (i.e. not at all), so the turn is sampled every 360/steps degrees.
    """
    times = np.linspace(0.0, duration, steps + 1, dtype=np.float32)
    rotations = []
    for i in range(steps + 1):
        angle = 2.0 * math.pi * i / steps
        w, x, y, z = trimesh.transformations.quaternion_about_axis(angle, [0.0, 1.0, 0.0])
        rotations.append([x, y, z, w])
    return RotationClip(
        name=ROTATION_CLIP_NAME,
        times=times,
        rotations=np.asarray(rotations, dtype=np.float32),
    )


class _OutlinePen(BasePen):
    """Collects glyph contours as flattened point lists"""

    def __init__(self, glyph_set, segments: int = CURVE_SEGMENTS):
        super().__init__(glyph_set)
        self.segments = segments
        self.contours: List[List[Tuple[float, float]]] = []
        self._points: List[Tuple[float, float]] = []

    def _moveTo(self, pt):
        self._points = [pt]

    def _lineTo(self, pt):
        self._points.append(pt)

    def _qCurveToOne(self, pt1, pt2):
        x0, y0 = self._getCurrentPoint()
        for i in range(1, self.segments + 1):
            t = i / self.segments
            mt = 1 - t
            self._points.append((
                mt * mt * x0 + 2 * mt * t * pt1[0] + t * t * pt2[0],
                mt * mt * y0 + 2 * mt * t * pt1[1] + t * t * pt2[1],
            ))

    def _curveToOne(self, pt1, pt2, pt3):
        x0, y0 = self._getCurrentPoint()
        for i in range(1, self.segments + 1):
            t = i / self.segments
            mt = 1 - t
            self._points.append((
                mt ** 3 * x0 + 3 * mt * mt * t * pt1[0] + 3 * mt * t * t * pt2[0] + t ** 3 * pt3[0],
                mt ** 3 * y0 + 3 * mt * mt * t * pt1[1] + 3 * mt * t * t * pt2[1] + t ** 3 * pt3[1],
            ))

    def _closePath(self):
        if len(self._points) >= 3:
            self.contours.append(self._points)
        self._points = []

    def _endPath(self):
        self._closePath()


def _signed_area(points) -> float:
    area = 0.0
    for (x1, y1), (x2, y2) in zip(points, points[1:] + points[:1]):
        area += x1 * y2 - x2 * y1
    return area / 2.0


def _glyph_shape(contours):
    """
    Combine glyph contours into one shape.

    Contours wound like the largest one are filled, the others are holes.
    Applying them largest-first handles islands inside counters.
    """
    ranked = sorted(contours, key=lambda c: abs(_signed_area(c)), reverse=True)
    if not ranked:
        return None
    outer_sign = math.copysign(1.0, _signed_area(ranked[0]))

    shape = Polygon()
    for contour in ranked:
        area = _signed_area(contour)
        if area == 0:
            continue
        poly = Polygon(contour).buffer(0)
        if math.copysign(1.0, area) == outer_sign:
            shape = shape.union(poly)
        else:
            shape = shape.difference(poly)
    return shape


def _polygons(geometry) -> List[Polygon]:
    if geometry is None or geometry.is_empty:
        return []
    if isinstance(geometry, Polygon):
        return [geometry]
    if isinstance(geometry, MultiPolygon):
        return list(geometry.geoms)
    return [g for g in getattr(geometry, "geoms", []) if isinstance(g, Polygon) and not g.is_empty]


def text_outline(font: TTFont, text: str, size: float = TEXT_SIZE):
    """
    Lay out text with the font's advance widths and return its 2D outline.

    Characters without a glyph are skipped. Newlines start a new line.
    """
    cmap = font.getBestCmap() or {}
    glyph_set = font.getGlyphSet()
    hmtx = font["hmtx"]
    units_per_em = font["head"].unitsPerEm
    hhea = font["hhea"]
    line_height = hhea.ascent - hhea.descent + hhea.lineGap
    unit = size / units_per_em

    shapes = []
    pen_x, pen_y = 0.0, 0.0
    for char in text:
        if char == "\n":
            pen_x = 0.0
            pen_y -= line_height
            continue

        glyph_name = cmap.get(ord(char))
        if glyph_name is None:
            logger.debug(f"No glyph for {char!r}, skipping")
            continue

        pen = _OutlinePen(glyph_set)
        glyph_set[glyph_name].draw(pen)
        contours = [
            [((x + pen_x) * unit, (y + pen_y) * unit) for x, y in contour]
            for contour in pen.contours
        ]
        shape = _glyph_shape(contours)
        if shape is not None and not shape.is_empty:
            shapes.append(shape)

        pen_x += hmtx[glyph_name][0]

    if not shapes:
        return None
    return unary_union(shapes)


def _extrude_slab(outline, offset: float, z0: float, z1: float) -> List[trimesh.Trimesh]:
    """Extrude the outline grown by offset between z0 and z1"""
    grown = outline.buffer(offset, join_style="round") if offset > 0 else outline
    slabs = []
    for poly in _polygons(grown):
        slab = trimesh.creation.extrude_polygon(poly, height=z1 - z0)
        slab.apply_translation([0.0, 0.0, z0])
        slabs.append(slab)
    return slabs


def extrude_text(outline, depth: float,
                 bevel_thickness: float = BEVEL_THICKNESS,
                 bevel_size: float = BEVEL_SIZE,
                 bevel_segments: int = BEVEL_SEGMENTS) -> trimesh.Trimesh:
    """
    Extrude a 2D outline by depth with a rounded bevel on both faces.

    The body spans z in [0, depth] grown by bevel_size; the bevel is built
    from stacked slabs that shrink back to the bare outline at
    z = -bevel_thickness and z = depth + bevel_thickness.
    """
    parts = _extrude_slab(outline, bevel_size, 0.0, depth)

    for i in range(bevel_segments):
        z_outer = bevel_thickness * math.cos(i / bevel_segments * math.pi / 2)
        z_inner = bevel_thickness * math.cos((i + 1) / bevel_segments * math.pi / 2)
        offset = bevel_size * math.sin((i + 0.5) / bevel_segments * math.pi / 2)
        if z_outer - z_inner <= 0:
            continue
        parts.extend(_extrude_slab(outline, offset, -z_outer, -z_inner))
        parts.extend(_extrude_slab(outline, offset, depth + z_inner, depth + z_outer))

    mesh = trimesh.util.concatenate(parts)
    # Per-face vertices give flat shading across the sharp slab edges
    mesh.unmerge_vertices()
    return mesh


def center_xy(mesh: trimesh.Trimesh) -> trimesh.Trimesh:
    """Move the bounding-box midpoint on x and y to the origin; z is left alone"""
    lo, hi = mesh.bounds
    mesh.apply_translation([-(lo[0] + hi[0]) / 2.0, -(lo[1] + hi[1]) / 2.0, 0.0])
    return mesh


def build_text_scene(font: TTFont, text: str, depth: float = 0.4, animate: bool = True) -> TextScene:
    """
    Build the scene for one text model

    Args:
        font: Parsed font
        text: String to render
        depth: Extrusion depth in scene units
        animate: Attach a full-turn rotation clip

    Returns:
        TextScene with one centered mesh
    """
    logger.info(f"Creating geometry for text: {text!r}, depth: {depth}")
    try:
        outline = text_outline(font, text)
    except (KeyError, ValueError, ShapelyError) as e:
        raise GeometryError(f"Failed to read glyph outlines: {e}") from e

    if outline is None or outline.is_empty:
        raise EmptyTextError(f"Text has no renderable glyphs: {text!r}")

    try:
        mesh = center_xy(extrude_text(outline, depth))
    except (ValueError, IndexError, ShapelyError) as e:
        raise GeometryError(f"Failed to extrude text: {e}") from e

    logger.info(f"Geometry created: {len(mesh.vertices)} vertices, {len(mesh.faces)} faces")

    return TextScene(
        text=text,
        mesh=mesh,
        scale=text_scale(text),
        animation=rotation_clip() if animate else None,
    )
