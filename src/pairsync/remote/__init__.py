"""pairsync Remote -- 权威存储边界

RemoteStore Protocol 及其两个实现：
- HttpRemoteStore: 经 HTTP 访问网关
- InMemoryBackend / InMemoryRemoteStore: 进程内参考实现
"""

from .config import RemoteConfig, load_remote_config
from .http_client import HttpRemoteStore
from .memory import InMemoryBackend, InMemoryRemoteStore
from .protocols import RemoteStore

__all__ = [
    "RemoteStore",
    "HttpRemoteStore",
    "InMemoryBackend",
    "InMemoryRemoteStore",
    "RemoteConfig",
    "load_remote_config",
]
