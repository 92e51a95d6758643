"""DCB 异常体系

三类可预期的失败：
- IntegrityError: 追加条件命中已有事件，或幂等重试存在歧义（调用方可重读后重试）
- StorageError: 底层存储失败（I/O、损坏），不在内部重试
- InvalidArgumentError: 调用方参数错误，立即失败，无副作用
"""


class DCBError(Exception):
    """dcbstore 基础异常"""

    def __init__(self, message: str, recoverable: bool = True) -> None:
        """
        Args:
            message: 错误描述
            recoverable: 调用方是否可通过重读状态后重试恢复
        """
        super().__init__(message)
        self.recoverable = recoverable


class IntegrityError(DCBError):
    """一致性边界被破坏

    追加条件的查询命中了 after 之后的已提交事件，
    或者同一批 event_id 的重试与已提交批次只部分重合。
    """

    def __init__(self, message: str, after: int | None = None) -> None:
        super().__init__(message, recoverable=True)
        self.after = after


class StorageError(DCBError):
    """底层存储失败

    调用方需将存储视为可能不一致，直到校验通过。
    """

    def __init__(self, message: str) -> None:
        super().__init__(message, recoverable=False)


class CorruptionError(StorageError):
    """检测到账本数据损坏（位置不连续、标签索引不一致、行无法解码）"""


class StorageIOError(StorageError):
    """文件系统或数据库 I/O 失败"""

    def __init__(self, message: str, original_error: Exception) -> None:
        super().__init__(f"{message}: {original_error}")
        self.original_error = original_error


class InvalidArgumentError(DCBError, ValueError):
    """参数错误（例如 backwards 与 subscribe 同时开启）"""

    def __init__(self, message: str) -> None:
        super().__init__(message, recoverable=False)
