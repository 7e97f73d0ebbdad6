"""
Dependency Injection Configuration

Holds the process-wide GuideClient used by the API. Tests swap in a client
built on a fake transport with set_guide_client().
"""
import logging

from tvguide.config import settings
from tvguide.services.cache import get_default_cache
from tvguide.services.guide_client import GuideClient


logger = logging.getLogger(__name__)

# Global singleton instance
_client: GuideClient | None = None


def get_guide_client() -> GuideClient:
    """
    Get or create the global guide client singleton.

    Returns:
        The global GuideClient instance, sharing the default entity cache
    """
    global _client
    if _client is None:
        _client = GuideClient.from_settings(settings, cache=get_default_cache())
        logger.debug("Created guide client")
    return _client


def set_guide_client(client: GuideClient) -> None:
    """Install a specific client (tests, embedding applications)."""
    global _client
    _client = client


def reset_guide_client() -> None:
    """
    Close and drop the guide client (mainly for testing and shutdown).

    WARNING: Only use this in test environments or at shutdown!
    """
    global _client
    if _client is not None:
        _client.close()
    _client = None
