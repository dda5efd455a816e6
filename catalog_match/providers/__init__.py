"""
Remote catalog providers.

- ``base``: the catalog client protocol resolvers are written against
- ``musicbrainz``: MusicBrainz release-group and artist searches
- ``gateway``: caching, throttling, retries and abort handling around a client
"""

from __future__ import annotations

from .base import CatalogClient
from .gateway import AbortSignal, CatalogGateway

__all__ = ["AbortSignal", "CatalogClient", "CatalogGateway"]
