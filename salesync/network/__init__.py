"""
Network module for salesync.

Provides the local WebSocket bridge that pushes sync status to the UI.
"""

from .ws_local import StatusBridge

__all__ = ['StatusBridge']
