"""洞察引擎读取的数据接口。

洞察引擎不直接依赖 ORM，而是通过两个协议读取只读快照：
- VisitStore：按时间窗口、状态、顾客、员工等条件查询服务记录
- CatalogStore：列出服务目录与员工

数据库实现见 database.stores；测试中可用内存实现替换。
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Protocol, Sequence, runtime_checkable


STATUS_WAITING = "waiting"
STATUS_IN_PROGRESS = "in-progress"
STATUS_DONE = "done"


@dataclass(frozen=True)
class VisitRecord:
    """一次到店服务记录（只读）。"""
    id: int
    service_name: str
    status: str
    created_at: datetime
    customer_id: Optional[int] = None
    staff_id: Optional[int] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    staff_name: Optional[str] = None

    @property
    def is_done(self) -> bool:
        return self.status == STATUS_DONE

    @property
    def is_incomplete(self) -> bool:
        """既未完成也不在排队中（如取消、未到店）。"""
        return self.status not in (STATUS_DONE, STATUS_WAITING)


@dataclass(frozen=True)
class CatalogEntry:
    """服务目录条目。"""
    service_id: int
    service_name: str
    price: float
    duration: int
    is_active: bool = True


@dataclass(frozen=True)
class StaffEntry:
    """员工条目。"""
    staff_id: int
    name: str
    is_active: bool = True


@dataclass(frozen=True)
class VisitQuery:
    """服务记录查询条件，未设置的字段不参与过滤。

    Attributes:
        created_from: 登记时间下限（含）。
        created_to: 登记时间上限（不含）。
        statuses: 允许的状态集合。
        customer_id: 指定顾客。
        staff_id: 指定员工。
        service_name: 指定服务名称（精确匹配）。
        has_customer: True 时排除散客记录。
        has_staff: True 时排除未分配员工的记录。
        completed_only: True 时只返回 done 且有完成时间的记录。
        limit: 最大返回条数。
        newest_first: 按登记时间倒序（默认正序）。
    """
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    statuses: Optional[Sequence[str]] = None
    customer_id: Optional[int] = None
    staff_id: Optional[int] = None
    service_name: Optional[str] = None
    has_customer: bool = False
    has_staff: bool = False
    completed_only: bool = False
    limit: Optional[int] = None
    newest_first: bool = False


@runtime_checkable
class VisitStore(Protocol):
    """服务记录只读存储。"""

    def query_visits(self, query: VisitQuery) -> List[VisitRecord]:
        """按条件查询服务记录。"""
        ...


@runtime_checkable
class CatalogStore(Protocol):
    """服务目录与员工只读存储。"""

    def list_services(self, active_only: bool = False) -> List[CatalogEntry]:
        """列出服务目录，按目录顺序（主键升序）。"""
        ...

    def list_staff(self, active_only: bool = False) -> List[StaffEntry]:
        """列出员工。"""
        ...


@dataclass
class PriceIndex:
    """服务名称 -> 目录条目 的连接索引。

    服务记录只保存服务名称，价格需要按名称回查目录：
    先精确匹配，未命中时按去空白、忽略大小写的名称再匹配一次。

    Example:
        >>> index = PriceIndex.from_catalog(services)
        >>> index.price_of("haircut ")
        25.0
    """
    exact: Dict[str, CatalogEntry] = field(default_factory=dict)
    normalized: Dict[str, CatalogEntry] = field(default_factory=dict)

    @staticmethod
    def normalize(name: str) -> str:
        return (name or "").strip().lower()

    @classmethod
    def from_catalog(cls, services: Sequence[CatalogEntry]) -> "PriceIndex":
        index = cls()
        for entry in services:
            index.exact[entry.service_name] = entry
            # 规范化名称冲突时保留目录中靠前的条目
            index.normalized.setdefault(cls.normalize(entry.service_name), entry)
        return index

    def lookup(self, service_name: str) -> Optional[CatalogEntry]:
        entry = self.exact.get(service_name)
        if entry is None:
            entry = self.normalized.get(self.normalize(service_name))
        return entry

    def price_of(self, service_name: str) -> float:
        """按名称查询价格，未收录的服务返回 0。"""
        entry = self.lookup(service_name)
        return entry.price if entry else 0.0
