"""
Event handlers.
"""
from .watchdog import StoreFileHandler

__all__ = ['StoreFileHandler']
