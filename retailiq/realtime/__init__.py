"""
Realtime channel between the conversation UI and the message broker.
"""

from retailiq.realtime.client import FrameHandler, RealtimeClient, unwrap

__all__ = ["FrameHandler", "RealtimeClient", "unwrap"]
