from streamwatch.models.progress import WatchProgress, WatchHistory
from streamwatch.models.favorite import Favorite
from streamwatch.models.setting import AppSetting

__all__ = [
    "WatchProgress",
    "WatchHistory",
    "Favorite",
    "AppSetting",
]
