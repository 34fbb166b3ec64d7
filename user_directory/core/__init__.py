"""
Core server components.

Import ``UserDirectoryServer`` from ``user_directory.core.server``.
"""
from .config import config, ServerConfig
from .store import NewUser, User, UserStore
from .sessions import Session, SessionRegistry
from .capability_registry import CapabilityRegistry

__all__ = [
    'config',
    'ServerConfig',
    'NewUser',
    'User',
    'UserStore',
    'Session',
    'SessionRegistry',
    'CapabilityRegistry',
]
