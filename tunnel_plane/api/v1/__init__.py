"""
API v1 modules
"""

from . import peers, interfaces

__all__ = ["peers", "interfaces"]
