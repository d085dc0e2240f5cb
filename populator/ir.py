"""
中间表示模块 (Intermediate Representation Module)
================================================

定义填充流程中的核心数据结构：DataItem、PopulationStats、PopulationResult。
字段同时接受上游编码流水线的 camelCase 名称与 Python 风格的 snake_case 名称。
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class MappingStatus(str, Enum):
    """
    数据项编码确认的生命周期阶段。
    只有 MATCHED 与 CONFIRMED 的数据项可以被填入模板。
    """
    MATCHED = "matched"
    SUGGESTED = "suggested"
    PENDING_REVIEW = "pending_review"
    CONFIRMED = "confirmed"
    UNMATCHED = "unmatched"


class DataType(str, Enum):
    """数据项的值类型；未知类型按 STRING 处理。"""
    CURRENCY = "currency"
    PERCENTAGE = "percentage"
    NUMBER = "number"
    STRING = "string"


ELIGIBLE_STATUSES = frozenset({MappingStatus.MATCHED, MappingStatus.CONFIRMED})


class DataItem(BaseModel):
    """
    数据项模型，表示一条已编码、已分类的提取值。

    属性:
        id: 数据项唯一标识
        original_name: 源文档中的原始名称（类目回退时写入名称单元格）
        item_code: 已确认的编码，例如 "<site.purchase.price>"
        suggested_code: 上游给出的建议编码（仅用于诊断）
        value: 原始值（数字或字符串）
        data_type: currency / percentage / number / string
        category: 自由文本类目，经 normalize_category 归一化
        mapping_status: 编码确认状态
        confidence: 上游匹配置信度
    """
    id: str
    original_name: str = Field(default="", alias="originalName")
    item_code: Optional[str] = Field(default=None, alias="itemCode")
    suggested_code: Optional[str] = Field(default=None, alias="suggestedCode")
    value: Any = None
    data_type: str = Field(default=DataType.STRING.value, alias="dataType")
    category: str = ""
    mapping_status: MappingStatus = Field(alias="mappingStatus")
    confidence: float = 0.0

    class Config:
        populate_by_name = True

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        if v is None:
            raise ValueError("id is required")
        return str(v)

    @field_validator("original_name", "category", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("data_type", mode="before")
    @classmethod
    def coerce_data_type(cls, v: Any) -> str:
        # 上游偶尔给出 "Currency" 或空值
        text = str(v or "").strip().lower()
        return text or DataType.STRING.value

    @field_validator("mapping_status", mode="before")
    @classmethod
    def coerce_mapping_status(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @property
    def is_eligible(self) -> bool:
        return self.mapping_status in ELIGIBLE_STATUSES


class PopulationStats(BaseModel):
    """
    填充统计。

    totalPlaceholders = matched + unmatched + 访问到的类目回退行数。
    """
    total_placeholders: int = Field(default=0, alias="totalPlaceholders")
    matched: int = 0
    unmatched: int = 0
    fallbacks_inserted: int = Field(default=0, alias="fallbacksInserted")
    placeholders_cleared: int = Field(default=0, alias="placeholdersCleared")

    class Config:
        populate_by_name = True

    def to_dict(self) -> Dict[str, int]:
        return self.model_dump(by_alias=True)


class PopulationResult(BaseModel):
    """
    一次填充调用的结果：输出字节、统计、已匹配与未匹配的占位符列表。
    """
    output_bytes: bytes
    stats: PopulationStats
    matched_placeholders: List[str] = Field(default_factory=list)
    unmatched_placeholders: List[str] = Field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """返回不含文件字节的输出契约（camelCase 键）。"""
        return {
            "stats": self.stats.to_dict(),
            "matchedPlaceholders": list(self.matched_placeholders),
            "unmatchedPlaceholders": list(self.unmatched_placeholders),
        }


def parse_items(raw_items: Any) -> List[DataItem]:
    """
    将 JSON 载荷解析为 DataItem 列表。

    接受数组，或包含 "items" 数组的对象。
    """
    if isinstance(raw_items, dict):
        raw_items = raw_items.get("items")
    if not isinstance(raw_items, list):
        raise ValueError("items must be a JSON array (or an object with an 'items' array)")
    return [item if isinstance(item, DataItem) else DataItem.model_validate(item) for item in raw_items]
