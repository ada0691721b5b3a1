"""Identity-partitioned catalog cache."""

from .partition_cache import CACHE_STORAGE_KEY, CachePartition, CacheStore

__all__ = ["CACHE_STORAGE_KEY", "CachePartition", "CacheStore"]
