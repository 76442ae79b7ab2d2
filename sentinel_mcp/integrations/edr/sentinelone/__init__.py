"""
SentinelOne integration: HTTP executor, REST client and Deep Visibility
search orchestrator.
"""

from .dv_search import DVSearchOrchestrator
from .sentinelone_client import SentinelOneClient
from .sentinelone_http import SentinelOneHttpClient

__all__ = ["DVSearchOrchestrator", "SentinelOneClient", "SentinelOneHttpClient"]
