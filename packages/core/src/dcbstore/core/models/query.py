"""Query Domain Model

查询是扁平的两层结构：Query 由若干 QueryItem 组成（OR），
每个 QueryItem 内部 types 与 tags 两个子句 AND 组合。
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator


class QueryItem(BaseModel):
    """查询项

    事件命中条件：
    - types 为空，或事件类型属于 types
    - tags 为空，或 tags 是事件标签的子集
    空查询项命中所有事件。
    """

    model_config = ConfigDict(frozen=True)

    types: frozenset[str] = Field(default_factory=frozenset, description="事件类型（任一）")
    tags: frozenset[str] = Field(default_factory=frozenset, description="标签（全部）")

    @field_validator("types", "tags", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return frozenset() if value is None else value


class Query(BaseModel):
    """查询：命中任一查询项即命中；无查询项时命中所有事件"""

    model_config = ConfigDict(frozen=True)

    items: tuple[QueryItem, ...] = Field(default=(), description="查询项（OR 语义）")

    @field_validator("items", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return () if value is None else value

    @classmethod
    def of(cls, *items: QueryItem) -> "Query":
        return cls(items=items)

    @property
    def matches_all(self) -> bool:
        """无查询项，或存在空查询项"""
        return not self.items or any(not i.types and not i.tags for i in self.items)


class AppendCondition(BaseModel):
    """追加条件 -- 一致性边界

    若 after 之后（after 为空时从第一个位置起）存在命中
    fail_if_events_match 的已提交事件，则拒绝追加。
    """

    model_config = ConfigDict(frozen=True)

    fail_if_events_match: Query = Field(description="不允许命中任何已提交事件的查询")
    after: int | None = Field(default=None, ge=0, description="参考位置，0 等价于 None")
