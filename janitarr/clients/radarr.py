"""
Radarr API client for Janitarr.
Handles wanted movies and movie search commands.
"""

from typing import Dict, Any

from .base import BaseClient
from ..models import MediaItem


class RadarrClient(BaseClient):
    """Client for Radarr API v3."""

    search_command = 'MoviesSearch'
    search_ids_field = 'movieIds'

    def _to_item(self, record: Dict[str, Any]) -> MediaItem:
        profile = record.get('qualityProfile') or {}
        return MediaItem(
            id=int(record['id']),
            title=record.get('title', ''),
            kind='movie',
            year=record.get('year'),
            quality_profile=profile.get('name', '') if isinstance(profile, dict) else '',
        )
