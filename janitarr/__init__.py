"""
Janitarr - Media Library Gap Automation
Periodically detects missing and cutoff-unmet content in Radarr and Sonarr
and issues bounded, evenly distributed search commands.
"""

__version__ = "1.2.0"
__app_name__ = "Janitarr"

from .config import Config
from .logger import Logger, ActivityLog
