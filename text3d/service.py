"""
Text model generation pipeline: font -> scene -> GLB -> published URI
"""
import logging

from .exporter import export_scene
from .fonts import FontProvider
from .geometry import build_text_scene
from .models import GenerationRequest
from .publisher import ArtifactPublisher

logger = logging.getLogger(__name__)


def generate_text_model(request: GenerationRequest,
                        font_provider: FontProvider,
                        publisher: ArtifactPublisher) -> str:
    """
    Run the whole pipeline for one request and return the artifact URI.

    Blocking; the HTTP layer runs it in a worker thread. Raises a
    GenerationError subclass naming the failed phase.
    """
    logger.info(f"Starting generation for text: {request.text!r}, depth: {request.depth}, "
                f"animate: {request.animate}")

    font = font_provider.load()
    scene = build_text_scene(font, request.text, depth=request.depth, animate=request.animate)
    payload = export_scene(scene)
    uri = publisher.publish(payload, request.text)

    logger.info(f"Generation finished: {uri}")
    return uri
