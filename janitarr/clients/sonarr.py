"""
Sonarr API client for Janitarr.
Handles wanted episodes and episode search commands.
"""

from typing import Dict, Any

from .base import BaseClient
from ..models import MediaItem


def format_episode_title(series_title: str, season: int, episode: int, title: str) -> str:
    """Format like "Series - S01E02 - Episode Title"."""
    return f"{series_title or 'Unknown Series'} - S{season:02d}E{episode:02d} - {title}"


class SonarrClient(BaseClient):
    """Client for Sonarr API v3."""

    search_command = 'EpisodeSearch'
    search_ids_field = 'episodeIds'

    def _page_params(self, page: int, page_size: int) -> Dict[str, Any]:
        # includeSeries gives us series title and quality profile per record
        params = super()._page_params(page, page_size)
        params['includeSeries'] = 'true'
        return params

    def _to_item(self, record: Dict[str, Any]) -> MediaItem:
        series = record.get('series') or {}
        series_title = series.get('title') or record.get('seriesTitle') or ''
        profile = series.get('qualityProfile') or {}
        season = int(record.get('seasonNumber') or 0)
        episode = int(record.get('episodeNumber') or 0)
        episode_title = record.get('title', '')

        return MediaItem(
            id=int(record['id']),
            title=format_episode_title(series_title, season, episode, episode_title),
            kind='episode',
            series_title=series_title,
            episode_title=episode_title,
            season_number=season,
            episode_number=episode,
            quality_profile=profile.get('name', '') if isinstance(profile, dict) else '',
        )
