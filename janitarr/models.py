"""
Shared data types for Janitarr.
"""

from dataclasses import dataclass, asdict
from typing import Dict, Any, Optional


# Server kinds
RADARR = 'radarr'   # movie-manager
SONARR = 'sonarr'   # episode-manager
SERVER_KINDS = (RADARR, SONARR)

# Search categories (kind x reason)
MISSING_MOVIES = 'missing-movies'
MISSING_EPISODES = 'missing-episodes'
CUTOFF_MOVIES = 'cutoff-movies'
CUTOFF_EPISODES = 'cutoff-episodes'
CATEGORIES = (MISSING_MOVIES, MISSING_EPISODES, CUTOFF_MOVIES, CUTOFF_EPISODES)

# Top-level reasons
MISSING = 'missing'
CUTOFF = 'cutoff'


def category_for(kind: str, reason: str) -> str:
    """Map a server kind and a reason (missing/cutoff) to its category."""
    noun = 'movies' if kind == RADARR else 'episodes'
    return f"{reason}-{noun}"


def reason_of(category: str) -> str:
    """Top-level reason of a category ('missing' or 'cutoff')."""
    return category.split('-', 1)[0]


@dataclass(frozen=True)
class MediaItem:
    """A wanted library entry as returned by Radarr/Sonarr."""
    id: int
    title: str
    kind: str = 'movie'  # 'movie' or 'episode'
    year: Optional[int] = None
    series_title: Optional[str] = None
    episode_title: Optional[str] = None
    season_number: Optional[int] = None
    episode_number: Optional[int] = None
    quality_profile: str = ""

    @property
    def formatted_code(self) -> Optional[str]:
        if self.season_number is None or self.episode_number is None:
            return None
        return f"S{self.season_number:02d}E{self.episode_number:02d}"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['formatted_code'] = self.formatted_code
        return data
