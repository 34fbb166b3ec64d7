"""
Utility functions and classes.
"""
from .config_manager import ConfigManager
from .result import Ok, Err, Result

__all__ = ['ConfigManager', 'Ok', 'Err', 'Result']
