"""
crawlkit storage module.
"""

from crawlkit.storage.memory import MemoryStorage
from crawlkit.storage.port import StoragePort

__all__ = ["MemoryStorage", "StoragePort"]
