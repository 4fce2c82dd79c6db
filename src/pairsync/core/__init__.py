"""pairsync Core -- 身份编码、快照缓存、对账调度与乐观变更

公共类型从子模块导入，例如：

    from pairsync.core.consumer import SyncClient
    from pairsync.core.models import ResourceKey, MutationKind
"""
