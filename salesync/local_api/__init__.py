"""
Local API Module

Provides the HTTP surface the local UI uses to drive sessions and sync.
"""

from .app import create_app, start_local_api

__all__ = ['create_app', 'start_local_api']
