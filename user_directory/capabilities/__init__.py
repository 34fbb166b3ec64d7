"""
Resources, tools and prompts served to connected clients.
"""
from . import prompts, tools, users

CAPABILITY_MODULES = [users, tools, prompts]

__all__ = ['CAPABILITY_MODULES']
