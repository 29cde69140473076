from doorlock.client.api import LockApiClient
from doorlock.client.realtime import RealtimeSubscriber
from doorlock.client.session import ClientSession
from doorlock.client.sync import DashboardSync

__all__ = ["ClientSession", "DashboardSync", "LockApiClient", "RealtimeSubscriber"]
