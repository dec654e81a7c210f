"""
Cache
内存 TTL 缓存 (惰性过期)
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, TypeVar
import logging
import time


logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]


@dataclass
class CacheEntry(Generic[T]):
    """Cached value plus its absolute expiry instant (clock seconds)."""
    value: T
    expires_at: Optional[float]

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class BaseCache(ABC):
    """
    缓存抽象基类
    """

    def __init__(self, ttl: Optional[float] = None):
        """
        初始化缓存

        Args:
            ttl: 缓存过期时间 (秒), None = 永不过期
        """
        self.ttl = ttl

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """获取缓存值"""
        pass

    @abstractmethod
    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """设置缓存值"""
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        """删除缓存"""
        pass

    @abstractmethod
    def clear(self) -> None:
        """清空缓存"""
        pass

    def exists(self, key: str) -> bool:
        """检查键是否存在"""
        return self.get(key) is not None


class MemoryCache(BaseCache):
    """
    内存缓存

    Expiry is lazy: a read at or after the expiry instant behaves like a miss
    and evicts the entry. Nothing sweeps expired entries in the background.
    """

    def __init__(
        self,
        ttl: Optional[float] = None,
        *,
        clock: Optional[Clock] = None,
        max_size: Optional[int] = None,
    ):
        """
        初始化内存缓存

        Args:
            ttl: 默认过期时间 (秒)
            clock: 返回当前时间(秒)的函数, 测试可注入手动时钟
            max_size: 最大缓存条目数 (None = 不限制)
        """
        super().__init__(ttl)
        self.clock: Clock = clock or time.time
        self.max_size = max_size
        self._cache: Dict[str, CacheEntry[Any]] = {}

    def now(self) -> float:
        return self.clock()

    def get(self, key: str) -> Optional[Any]:
        """获取缓存值"""
        entry = self._cache.get(key)
        if entry is None:
            return None

        if entry.is_expired(self.now()):
            del self._cache[key]
            logger.debug("Cache entry expired: %s", key)
            return None

        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """设置缓存值"""
        # ttl=0 表示立即过期, None 表示永不过期
        ttl = ttl if ttl is not None else self.ttl
        expires_at = self.now() + ttl if ttl is not None else None

        # dict 保持插入顺序, 覆盖写入时移到末尾
        self._cache.pop(key, None)
        self._cache[key] = CacheEntry(value=value, expires_at=expires_at)

        if self.max_size is not None:
            while len(self._cache) > self.max_size:
                oldest = next(iter(self._cache))
                del self._cache[oldest]

    def delete(self, key: str) -> None:
        """删除缓存"""
        self._cache.pop(key, None)

    def clear(self) -> None:
        """清空缓存"""
        self._cache.clear()

    def size(self) -> int:
        """返回缓存大小 (包含尚未被读取淘汰的过期条目)"""
        return len(self._cache)
