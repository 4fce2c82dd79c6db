"""pairsync 异常体系

四类错误：
- 本地校验（InvalidInput 及子类）：在任何远端调用之前拒绝
- 本地争用（MutationInProgress）：同一 key 上已有同类变更在途
- 远端业务拒绝（RemoteRejection）：按消息文本分类为 benign / genuine
- 传输失败（TransportError）：远端不可达或超时
"""


class PairSyncError(Exception):
    """pairsync 基础异常"""


class InvalidInput(PairSyncError):
    """本地校验失败，不会发送到远端"""


class InvalidArgument(InvalidInput):
    """参数非法（如同一参与者自己和自己会话）"""


class MalformedId(InvalidInput):
    """ConversationId 格式错误"""

    def __init__(self, conversation_id: str, reason: str = "") -> None:
        detail = f": {reason}" if reason else ""
        super().__init__(f"Malformed conversation id {conversation_id!r}{detail}")
        self.conversation_id = conversation_id


class NotAParticipant(InvalidInput):
    """当前参与者不属于该会话"""

    def __init__(self, conversation_id: str, participant: str) -> None:
        super().__init__(
            f"{participant!r} is not a participant of {conversation_id!r}"
        )
        self.conversation_id = conversation_id
        self.participant = participant


class QueryTooShort(InvalidInput):
    """搜索词长度不足，调用方契约要求不发送到远端"""

    def __init__(self, query: str, min_length: int) -> None:
        super().__init__(
            f"Search query must be at least {min_length} characters, got {len(query)}"
        )
        self.query = query
        self.min_length = min_length


class InvalidPayload(InvalidInput):
    """变更 payload 不满足形状约束"""


class MutationInProgress(PairSyncError):
    """同一 key 上同类变更仍在途，本地拒绝"""

    def __init__(self, kind: str, key: object) -> None:
        super().__init__(f"{kind} already in progress for {key}")
        self.kind = kind
        self.key = key


class RemoteError(PairSyncError):
    """远端边界错误基类"""

    def __init__(self, message: str, recoverable: bool = False) -> None:
        """
        Args:
            message: 错误描述
            recoverable: 是否可通过下一次轮询自动恢复
        """
        super().__init__(message)
        self.message = message
        self.recoverable = recoverable


class RemoteRejection(RemoteError):
    """远端业务规则拒绝，message 为人类可读的错误文本"""

    def __init__(self, message: str) -> None:
        super().__init__(message, recoverable=False)


class TransportError(RemoteError):
    """远端不可达（连接失败、超时、5xx 等）"""

    def __init__(self, target: str, original_error: Exception | None = None) -> None:
        """
        Args:
            target: 尝试访问的远端地址或操作名
            original_error: 原始异常
        """
        detail = f" -- {original_error}" if original_error else ""
        super().__init__(f"Remote store unreachable: {target}{detail}", recoverable=True)
        self.target = target
        self.original_error = original_error
