"""
propsync - Draft/commit synchronization for building schedules

Keeps ordered, per-key collections (weekday task templates, the security
checklist) editable in memory while live subscriptions to the remote store
run in the background, and commits each bucket atomically.
"""

__version__ = "0.1.0"
__author__ = "Property Ops Team"


__all__ = [
    "SyncEngine",
    "OrderedItem",
    "PropsyncConfig",
    "load_config",
    "get_propsync_home",
]

from .config import PropsyncConfig, load_config, get_propsync_home
from .engine import SyncEngine
from .schemas import OrderedItem
