"""
Media Storage
=============

Interface for persisting inbound MMS media, plus the default
implementation that stores nothing and points at the authenticated
media proxy instead.
"""

from abc import ABC, abstractmethod
from urllib.parse import urlencode

from src.config import MEDIA_PROXY_PATH


class IMediaStore(ABC):
    """Interface for media persistence."""

    @abstractmethod
    async def persist(self, url: str, content_type: str) -> str:
        """
        Persist the media behind url.

        Returns:
            URL under which staff can later view the media
        """


class ProxyMediaStore(IMediaStore):
    """Leaves media at Twilio and links to /api/twilio/media."""

    async def persist(self, url: str, content_type: str) -> str:
        query = urlencode({"u": url, "ct": content_type or "image/jpeg"})
        return f"{MEDIA_PROXY_PATH}?{query}"
