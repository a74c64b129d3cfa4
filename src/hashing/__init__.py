"""
Checksum utilities.
"""

from .hasher import Hasher, compute_checksum

__all__ = ["Hasher", "compute_checksum"]
