"""SQLAlchemy ORM 模型定义。

本模块定义了洞察引擎读取的全部数据库表：
- 服务目录（服务名称、价格、时长、是否上架）
- 员工、顾客等基础实体
- 到店服务记录（排队 -> 服务中 -> 完成）

服务记录通过 service_name 字符串与服务目录关联（而非外键），
与历史数据保持兼容；连接规则见 insights.stores.PriceIndex。
"""
from typing import List, Optional
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime,
    DECIMAL, ForeignKey
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import relationship
from datetime import datetime

# SQLAlchemy declarative base，所有模型都继承自此类
Base = declarative_base()

# 允许使用旧式类型注解
Base.__allow_unmapped__ = True


# 服务记录状态
VISIT_STATUS_WAITING = "waiting"
VISIT_STATUS_IN_PROGRESS = "in-progress"
VISIT_STATUS_DONE = "done"


class Service(Base):
    """服务目录表模型。

    Attributes:
        id: 主键，自增整数。
        name: 服务名称，唯一，服务记录通过该字段关联。
        price: 单价，DECIMAL(10,2)。
        duration: 服务时长（分钟）。
        is_active: 是否上架，下架服务不参与趋势分析。
        created_at: 创建时间。
    """
    __tablename__ = "services"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    name: str = Column(String(100), nullable=False, unique=True)
    price: float = Column(DECIMAL(10, 2), nullable=False, default=0)
    duration: int = Column(Integer, nullable=False, default=30)
    is_active: bool = Column(Boolean, default=True)
    created_at: datetime = Column(DateTime, default=datetime.utcnow)


class Staff(Base):
    """员工表模型。

    Attributes:
        id: 主键，自增整数。
        name: 员工姓名。
        is_active: 是否在职。
        created_at: 创建时间。

    Relationships:
        visits: 该员工负责的服务记录。
    """
    __tablename__ = "staff"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    name: str = Column(String(50), nullable=False)
    is_active: bool = Column(Boolean, default=True)
    created_at: datetime = Column(DateTime, default=datetime.utcnow)

    visits: List["Visit"] = relationship("Visit", back_populates="staff")


class Customer(Base):
    """顾客表模型。

    Attributes:
        id: 主键，自增整数。
        name: 顾客姓名。
        phone: 联系电话，可选。
        notes: 备注，可选。
        created_at: 创建时间。
    """
    __tablename__ = "customers"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    name: str = Column(String(50), nullable=False)
    phone: Optional[str] = Column(String(20))
    notes: Optional[str] = Column(Text)
    created_at: datetime = Column(DateTime, default=datetime.utcnow)

    visits: List["Visit"] = relationship("Visit", back_populates="customer")


class Visit(Base):
    """到店服务记录表模型（walk-in）。

    状态机（waiting -> in-progress -> done）由排队模块维护，
    洞察引擎只读取本表。

    Attributes:
        id: 主键，自增整数。
        customer_id: 顾客ID，散客为空。
        service_name: 服务名称，与 services.name 按字符串关联。
        staff_id: 服务员工ID，未分配时为空。
        status: 状态：waiting / in-progress / done / 其他（如 cancelled）。
        created_at: 登记时间。
        started_at: 开始服务时间，可选。
        completed_at: 完成时间，可选（历史数据中 done 记录也可能为空）。
    """
    __tablename__ = "visits"

    id: int = Column(Integer, primary_key=True, autoincrement=True)
    customer_id: Optional[int] = Column(Integer, ForeignKey("customers.id"))
    service_name: str = Column(String(100), nullable=False)
    staff_id: Optional[int] = Column(Integer, ForeignKey("staff.id"))
    status: str = Column(String(20), nullable=False, default=VISIT_STATUS_WAITING)
    created_at: datetime = Column(DateTime, default=datetime.utcnow, index=True)
    started_at: Optional[datetime] = Column(DateTime)
    completed_at: Optional[datetime] = Column(DateTime)

    customer: Optional["Customer"] = relationship("Customer", back_populates="visits")
    staff: Optional["Staff"] = relationship("Staff", back_populates="visits")
