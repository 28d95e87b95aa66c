"""
Tunnel Plane - WireGuard peer lifecycle and gateway synchronization
"""

__version__ = "1.0.0"
