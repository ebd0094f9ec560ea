"""
Failures raised while generating a text model.

Each error carries the pipeline phase it happened in so the HTTP layer can
log it without leaking details to the caller.
"""


class GenerationError(Exception):
    """Base class for pipeline failures"""
    phase = "generate"


class UpstreamFetchError(GenerationError):
    """Font resource unreachable or unparsable"""
    phase = "font"


class GeometryError(GenerationError):
    """Glyph outlines could not be turned into a mesh"""
    phase = "geometry"


class EmptyTextError(GeometryError):
    """Text has no glyph the font can render"""


class ExportError(GenerationError):
    """Scene could not be serialized to GLB"""
    phase = "export"


class PersistenceError(GenerationError):
    """Artifact could not be written or uploaded"""
    phase = "publish"
