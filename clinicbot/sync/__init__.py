from clinicbot.sync.bridge import NullBridge, SyncBridge
from clinicbot.sync.hub import HubBridge
from clinicbot.sync.relay import ReconnectPolicy, RelayBridge

__all__ = [
    "SyncBridge",
    "NullBridge",
    "HubBridge",
    "RelayBridge",
    "ReconnectPolicy",
]
