"""
Font Provider
Fetches a TrueType/OpenType font and parses it with fontTools
"""
import io
import logging
import os
import struct

import requests
from fontTools.ttLib import TTFont, TTLibError

from .errors import UpstreamFetchError

logger = logging.getLogger(__name__)


class FontProvider:
    """
    Loads the font used for text geometry.

    The font is fetched again on every call; nothing is cached.
    """

    def __init__(self, url: str, timeout: float = 10.0):
        """
        Args:
            url: http(s) URL of the font, or a local file path
            timeout: Seconds to wait for the remote server
        """
        self.url = url
        self.timeout = timeout

    def load(self) -> TTFont:
        """Fetch and parse the font, raising UpstreamFetchError on any failure"""
        content = self._fetch()
        try:
            font = TTFont(io.BytesIO(content))
            # Touch the tables we need so a truncated file fails here, not mid-geometry
            font.getBestCmap()
            font.getGlyphSet()
        except (TTLibError, KeyError, AssertionError, ValueError, struct.error) as e:
            raise UpstreamFetchError(f"Font could not be parsed: {e}") from e

        logger.info(f"Font loaded: {self.url} ({len(content)} bytes)")
        return font

    def _fetch(self) -> bytes:
        if not self.url.startswith(("http://", "https://")):
            path = self.url[len("file://"):] if self.url.startswith("file://") else self.url
            try:
                with open(os.path.expanduser(path), "rb") as f:
                    return f.read()
            except OSError as e:
                raise UpstreamFetchError(f"Font file unreadable: {e}") from e

        logger.info(f"Fetching font from {self.url}")
        try:
            response = requests.get(self.url, timeout=self.timeout)
        except requests.RequestException as e:
            raise UpstreamFetchError(f"Font request failed: {e}") from e

        if not response.ok:
            raise UpstreamFetchError(f"HTTP {response.status_code}: {response.reason}")

        if not response.content:
            raise UpstreamFetchError("Font response was empty")

        return response.content