from calendar_bridge.models.kv import KVEntry
from calendar_bridge.models.oauth import CalendarCredential, CsrfState
from calendar_bridge.models.sync import SyncState
from calendar_bridge.models.watch import WatchChannel

__all__ = ["KVEntry", "CsrfState", "CalendarCredential", "WatchChannel", "SyncState"]
