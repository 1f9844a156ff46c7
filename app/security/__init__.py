"""Decryption of stored OTA credentials: key handling, bounded parallelism and caching."""

from .cache import TTLCache
from .encryption import EncryptionService
from .parallel import ParallelProcessor

__all__ = ["TTLCache", "EncryptionService", "ParallelProcessor"]
