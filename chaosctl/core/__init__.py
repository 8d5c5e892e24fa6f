"""
chaosctl Core Module
"""

from chaosctl.core.feed import TrafficFeedPoller
from chaosctl.core.model import ProxyConfiguration, normalize, serialize
from chaosctl.core.state import ChaosState
from chaosctl.core.sync import SyncClient

__all__ = ["ChaosState", "ProxyConfiguration", "SyncClient", "TrafficFeedPoller", "normalize", "serialize"]
