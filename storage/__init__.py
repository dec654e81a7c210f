"""
Storage Module
存储模块 - 进程内 TTL 缓存
"""
from .cache import (
    BaseCache,
    CacheEntry,
    MemoryCache,
)

__all__ = [
    "BaseCache",
    "CacheEntry",
    "MemoryCache",
]
