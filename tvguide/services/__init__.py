"""
Services package for the TV guide client

This package contains the decoding, caching and fetch orchestration layers.
"""
from tvguide.services.cache import EntityCache, EntityKind, get_default_cache
from tvguide.services.fetch_orchestrator import FetchOrchestrator
from tvguide.services.guide_client import GuideClient
from tvguide.services.lineup import Lineup
from tvguide.services.transport import HttpTransport

__all__ = [
    'EntityCache',
    'EntityKind',
    'get_default_cache',
    'FetchOrchestrator',
    'GuideClient',
    'Lineup',
    'HttpTransport',
]
