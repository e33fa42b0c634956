"""
笔记数据验证模式

存储格式与接口返回格式相同：驼峰字段名的嵌套树，不另做 DTO 转换。
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from utils.timezone import ensure_utc


class CamelModel(BaseModel):
    """驼峰命名的基础模型，同时接受 snake_case 字段名"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class NodeType(str, Enum):
    """条目类型"""
    FOLDER = "folder"
    NOTE = "note"
    TASK = "task"


class RepeatUnit(str, Enum):
    """重复单位"""
    SECONDS = "seconds"
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"
    YEARS = "years"


# 旧版独立提醒记录使用的重复类型
LEGACY_REPEAT_TYPES = {
    "daily": RepeatUnit.DAYS.value,
    "weekly": RepeatUnit.WEEKS.value,
    "monthly": RepeatUnit.MONTHS.value,
    "yearly": RepeatUnit.YEARS.value,
}


# ============ 提醒 ============

class RepeatOptions(CamelModel):
    """重复规则"""
    unit: RepeatUnit
    interval: int = 1
    end_date: Optional[datetime] = None
    days_of_week: Optional[List[int]] = None  # 0=周日 ... 6=周六，仅 unit=weeks 时使用

    @model_validator(mode="before")
    @classmethod
    def accept_legacy_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "unit" not in data and "type" in data:
            data["unit"] = data.pop("type")
        unit = data.get("unit")
        if isinstance(unit, str) and unit.lower() in LEGACY_REPEAT_TYPES:
            data["unit"] = LEGACY_REPEAT_TYPES[unit.lower()]
        return data

    @field_validator("end_date")
    @classmethod
    def normalize_end_date(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

    @field_validator("days_of_week")
    @classmethod
    def normalize_days(cls, value: Optional[List[int]]) -> Optional[List[int]]:
        if value is None:
            return None
        for day in value:
            if day < 0 or day > 6:
                raise ValueError("星期取值范围为 0-6（0 表示周日）")
        return sorted(set(value)) or None


class Reminder(CamelModel):
    """挂在笔记/任务上的提醒"""
    timestamp: datetime
    repeat_options: Optional[RepeatOptions] = None
    snoozed_until: Optional[datetime] = None
    enabled: bool = True
    last_triggered: Optional[datetime] = None
    trigger_count: int = 0

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        frozen = True

    @field_validator("timestamp", "snoozed_until", "last_triggered")
    @classmethod
    def normalize_times(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)


# ============ 树节点 ============

class TreeNode(CamelModel):
    """
    树节点（文件夹 / 笔记 / 任务）

    节点不可变，所有修改都通过 model_copy 生成新对象。
    """
    id: str
    label: str
    type: NodeType
    content: Optional[str] = None
    completed: Optional[bool] = None
    children: Optional[List["TreeNode"]] = None
    created_at: datetime
    updated_at: datetime
    reminder: Optional[Reminder] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        frozen = True

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_times(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @property
    def is_folder(self) -> bool:
        return self.type == NodeType.FOLDER

    def to_dict(self) -> Dict[str, Any]:
        """序列化为存储/接口格式"""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


TreeNode.model_rebuild()


def dump_tree(nodes: List[TreeNode]) -> List[Dict[str, Any]]:
    """序列化整棵树"""
    return [node.to_dict() for node in nodes]


# ============ 请求模型 ============

class ItemCreate(CamelModel):
    """创建条目"""
    type: str = Field(..., description="folder / note / task")
    label: str
    content: Optional[str] = None
    completed: Optional[bool] = None
    reminder: Optional[Reminder] = None


class ItemUpdate(CamelModel):
    """
    更新条目

    额外字段会被保留并交给树引擎校验（例如试图修改 type 时返回 InvalidField）。
    """
    label: Optional[str] = None
    content: Optional[str] = None
    completed: Optional[bool] = None
    reminder: Optional[Reminder] = None

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        extra = "allow"

    def to_patch(self) -> Dict[str, Any]:
        """只包含请求中显式给出的字段"""
        patch = {name: getattr(self, name) for name in self.model_fields_set}
        patch.update(self.model_extra or {})
        return patch


class ItemMove(CamelModel):
    """移动条目"""
    parent_id: Optional[str] = None
    index: Optional[int] = None


class TreeReplace(CamelModel):
    """整树替换（导入）"""
    tree: List[Dict[str, Any]]


class ReminderSet(CamelModel):
    """设置提醒"""
    timestamp: datetime
    repeat_options: Optional[RepeatOptions] = None
    enabled: bool = True

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @field_validator("repeat_options")
    @classmethod
    def check_interval(cls, value: Optional[RepeatOptions]) -> Optional[RepeatOptions]:
        if value is not None and value.interval < 1:
            raise ValueError("重复间隔必须为正整数")
        return value

    def to_reminder(self) -> Reminder:
        return Reminder(
            timestamp=self.timestamp,
            repeat_options=self.repeat_options,
            enabled=self.enabled,
        )


class ReminderSnooze(CamelModel):
    """稍后提醒"""
    minutes: int = Field(..., ge=1, le=10080)
