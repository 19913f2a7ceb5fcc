"""洞察基础类型。

本模块定义所有洞察分类共用的类型：
- InsightCategory：7 个洞察分类
- InsightPriority：优先级（数值越小越重要）
- FixedPriority / WeightedPriority：两种优先级来源（固定档位 / 加权打分）
- Insight：输出给前端的洞察条目
- CategoryResult：单个分类的执行结果（洞察列表或异常）
"""
import math
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date, datetime
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional, Union

from config.settings import settings


class InsightCategory(str, Enum):
    """洞察分类。"""
    CUSTOMER_BEHAVIOR = "customer-behavior"
    REVENUE_OPTIMIZATION = "revenue-optimization"
    STAFF_PERFORMANCE = "staff-performance"
    RECOMMENDATIONS = "recommendations"
    REPEAT_VISITS = "repeat-visits"
    SLOT_OPTIMIZATION = "slot-optimization"
    CUSTOMER_PERSONALIZATION = "customer-personalization"

    @classmethod
    def values(cls) -> List[str]:
        return [c.value for c in cls]


class InsightPriority(IntEnum):
    """优先级档位，数值越小越重要。"""
    CRITICAL = 1
    HIGH = 2
    MEDIUM = 3
    LOW = 4
    INFO = 5

    @classmethod
    def parse(cls, value: Union[int, str, "InsightPriority"]) -> "InsightPriority":
        """解析优先级：支持枚举、1-5 整数或名称（不区分大小写）。

        Raises:
            ValueError: 无法识别的优先级。
        """
        if isinstance(value, InsightPriority):
            return value
        if isinstance(value, int):
            return cls(value)
        text = str(value).strip()
        if text.isdigit():
            return cls(int(text))
        try:
            return cls[text.upper()]
        except KeyError:
            raise ValueError(f"Invalid priority: {value}")


def classify_priority(urgency: float = 0, impact: float = 0,
                      frequency: float = 0) -> InsightPriority:
    """按紧急度、影响面、频次（均为 0-100）加权计算优先级。

    score = 0.5 * urgency + 0.3 * impact + 0.2 * frequency，
    >=80 CRITICAL，>=60 HIGH，>=40 MEDIUM，>=20 LOW，其余 INFO。
    """
    score = urgency * 0.5 + impact * 0.3 + frequency * 0.2
    if score >= 80:
        return InsightPriority.CRITICAL
    if score >= 60:
        return InsightPriority.HIGH
    if score >= 40:
        return InsightPriority.MEDIUM
    if score >= 20:
        return InsightPriority.LOW
    return InsightPriority.INFO


@dataclass(frozen=True)
class FixedPriority:
    """规则直接指定的优先级档位。"""
    tier: InsightPriority

    def resolve(self) -> InsightPriority:
        return self.tier


@dataclass(frozen=True)
class WeightedPriority:
    """由加权打分得出的优先级。"""
    urgency: float = 0
    impact: float = 0
    frequency: float = 0

    def resolve(self) -> InsightPriority:
        return classify_priority(self.urgency, self.impact, self.frequency)


PrioritySource = Union[FixedPriority, WeightedPriority, InsightPriority]


def resolve_priority(source: PrioritySource) -> InsightPriority:
    if isinstance(source, (FixedPriority, WeightedPriority)):
        return source.resolve()
    return InsightPriority(source)


def round_half_up(value: float, ndigits: int = 0) -> float:
    """四舍五入（.5 向上取整），与内置 round 的银行家舍入不同。"""
    factor = 10 ** ndigits
    result = math.floor(value * factor + 0.5) / factor
    return int(result) if ndigits == 0 else result


def format_number(value: float) -> str:
    """整数值不带小数点，其余最多保留 2 位小数。"""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.2f}".rstrip("0").rstrip(".")


def format_money(value: float) -> str:
    """带货币符号的金额文本，如 ``$255``。"""
    return f"{settings.currency_symbol}{format_number(value)}"


@dataclass
class Insight:
    """一条洞察。

    Attributes:
        id: 稳定标识，如 ``churn-high-risk``。
        category: 所属分类。
        title: 标题。
        description: 描述。
        emoji: 展示用图标。
        priority: 优先级（构造时可传 FixedPriority / WeightedPriority）。
        value: 展示值（数字或字符串）。
        actionable: 是否可操作。
        action_label: 操作按钮文案。
        action_url: 操作跳转链接。
        metadata: 附加数据（明细列表等）。
    """
    id: str
    category: InsightCategory
    title: str
    description: str
    emoji: str
    priority: PrioritySource
    value: Union[str, int, float]
    actionable: Optional[bool] = None
    action_label: Optional[str] = None
    action_url: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = field(default=None)

    def __post_init__(self) -> None:
        self.priority = resolve_priority(self.priority)
        self.category = InsightCategory(self.category)

    def to_dict(self) -> Dict[str, Any]:
        """转换为对外的 JSON 结构（camelCase，未设置的可选字段省略）。"""
        data: Dict[str, Any] = {
            "id": self.id,
            "category": self.category.value,
            "title": self.title,
            "description": self.description,
            "emoji": self.emoji,
            "priority": int(self.priority),
            "value": self.value,
        }
        if self.actionable is not None:
            data["actionable"] = self.actionable
        if self.action_label is not None:
            data["actionLabel"] = self.action_label
        if self.action_url is not None:
            data["actionUrl"] = self.action_url
        if self.metadata is not None:
            data["metadata"] = to_wire(self.metadata)
        return data


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def to_wire(value: Any) -> Any:
    """递归转换为可 JSON 序列化的结构：dataclass 字段名转 camelCase，时间转 ISO 字符串。"""
    if is_dataclass(value) and not isinstance(value, type):
        return {
            _camel(f.name): to_wire(getattr(value, f.name))
            for f in fields(value)
        }
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {
            (_camel(k) if isinstance(k, str) else k): to_wire(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [to_wire(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


@dataclass
class CategoryResult:
    """单个分类的执行结果：成功时为洞察列表，失败时记录异常。"""
    category: InsightCategory
    insights: List[Insight] = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def sort_by_priority(insights: List[Insight]) -> List[Insight]:
    """按优先级升序稳定排序。"""
    return sorted(insights, key=lambda i: int(i.priority))
