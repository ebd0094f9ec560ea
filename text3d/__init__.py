"""Extruded 3D text models as GLB files, served over HTTP."""

__version__ = "1.0.0"
