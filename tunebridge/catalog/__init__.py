"""
Catalog clients and models

- models: Track, CandidateUrl, ResolvedTrack, PlaylistSummary, CatalogResponse
- saavn: primary catalog client (playable audio URLs)
- spotify: secondary catalog client (metadata only)
- datasource: live/fallback selection for browsing calls
- fixtures: offline catalog served by the fallback source
"""

from .datasource import (
    DataSourceKind,
    DataSourcePolicy,
    FallbackDataSource,
    LiveDataSource,
    SourcedResult,
)
from .models import (
    CandidateUrl,
    CatalogResponse,
    CatalogSource,
    PlaylistSummary,
    ResolutionSource,
    ResolvedTrack,
    Track,
)
from .saavn import SaavnCatalog
from .spotify import SpotifyCatalog

__all__ = [
    'DataSourceKind',
    'DataSourcePolicy',
    'FallbackDataSource',
    'LiveDataSource',
    'SourcedResult',
    'CandidateUrl',
    'CatalogResponse',
    'CatalogSource',
    'PlaylistSummary',
    'ResolutionSource',
    'ResolvedTrack',
    'Track',
    'SaavnCatalog',
    'SpotifyCatalog',
]
