"""pairsync -- 两方会话目录的同步内核

规范 ConversationId、快照缓存、轮询对账与乐观变更。
"""

__version__ = "0.1.0"
