"""Event Domain Model

事件一经提交即不可变，账本只允许追加，不允许更新或删除。
position 在提交时分配，严格单调递增、无空洞、永不复用。
"""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Event(BaseModel):
    """Event 数据模型

    event_id 由调用方提供，仅用于幂等去重；为空表示不参与去重。
    tags 之间没有层级关系，按字符串精确匹配（区分大小写，不做规范化）。
    """

    model_config = ConfigDict(frozen=True)

    event_type: str = Field(description="事件类型")
    data: bytes = Field(default=b"", description="事件内容（二进制）")
    tags: frozenset[str] = Field(default_factory=frozenset, description="标签集合")
    event_id: UUID | None = Field(default=None, description="幂等键，UUID 格式")

    @field_validator("tags", mode="before")
    @classmethod
    def _none_tags_as_empty(cls, value):
        return frozenset() if value is None else value

    @field_validator("data", mode="before")
    @classmethod
    def _encode_text_data(cls, value):
        # 文本内容按 UTF-8 存储
        if isinstance(value, str):
            return value.encode("utf-8")
        return value

    def same_content(self, other: "Event") -> bool:
        """内容是否一致（event_type、data、tags），不比较 event_id"""
        return (
            self.event_type == other.event_type
            and self.data == other.data
            and self.tags == other.tags
        )


class SequencedEvent(BaseModel):
    """已提交事件及其在账本中的位置"""

    model_config = ConfigDict(frozen=True)

    event: Event = Field(description="事件")
    position: int = Field(ge=1, description="账本位置，从 1 开始严格递增")


class AppendBatch(BaseModel):
    """带条件追加的幂等记录

    同一追加条件（fingerprint）下提交的一批事件及其位置区间，
    与事件在同一事务内写入。
    """

    model_config = ConfigDict(frozen=True)

    fingerprint: str = Field(description="追加条件指纹")
    event_ids: tuple[UUID | None, ...] = Field(description="批次内 event_id，按批次顺序")
    first_position: int = Field(ge=1, description="批次首个事件位置")
    last_position: int = Field(ge=1, description="批次最后一个事件位置")
