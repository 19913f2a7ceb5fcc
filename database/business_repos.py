"""业务记录仓库 —— 到店服务记录的数据访问层。

管理门店日常经营产生的服务记录（walk-in），
保存时自动处理关联实体（顾客、员工、服务目录）的创建，
并提供洞察引擎使用的条件查询。
"""
from typing import Optional, List, Dict, Any
from datetime import datetime
from sqlalchemy.orm import Session, joinedload
from loguru import logger

from .base_crud import BaseCRUD
from .connection import DatabaseConnection
from .entity_repos import StaffRepository, CustomerRepository, ServiceRepository
from .models import (
    Visit, VISIT_STATUS_DONE, VISIT_STATUS_IN_PROGRESS, VISIT_STATUS_WAITING
)
from insights.stores import VisitQuery, VisitRecord


class VisitRepository(BaseCRUD):
    """服务记录 仓库。

    自动处理关联实体（顾客、员工、服务目录）的创建。
    """

    def __init__(self, conn: DatabaseConnection,
                 staff_repo: StaffRepository,
                 customer_repo: CustomerRepository,
                 service_repo: ServiceRepository) -> None:
        super().__init__(conn)
        self._staff = staff_repo
        self._customers = customer_repo
        self._services = service_repo

    def save(self, visit_data: Dict[str, Any]) -> int:
        """保存一条服务记录。

        Args:
            visit_data: 服务记录数据字典，支持以下键：
                - service_name: 服务名称（必填）
                - customer_name: 顾客姓名（可选，为空表示散客）
                - customer_phone: 顾客电话（可选）
                - staff_name: 员工姓名（可选）
                - status: 状态（可选，默认 waiting）
                - created_at: 登记时间，datetime 或 ISO 字符串（可选，默认当前时间）
                - started_at: 开始时间（可选）
                - completed_at: 完成时间（可选）
                - price: 目录中不存在该服务时使用的价格（可选）
                - duration: 目录中不存在该服务时使用的时长（可选）

        Returns:
            新创建的服务记录ID。

        Raises:
            ValueError: 缺少服务名称或时间格式无效。
        """
        service_name = visit_data.get("service_name")
        if not service_name:
            raise ValueError("service_name is required")

        with self._get_session() as session:
            customer = None
            if visit_data.get("customer_name"):
                customer = self._customers.get_or_create(
                    visit_data["customer_name"],
                    phone=visit_data.get("customer_phone"),
                    session=session
                )

            staff = None
            if visit_data.get("staff_name"):
                staff = self._staff.get_or_create(
                    visit_data["staff_name"], session=session
                )

            if "price" in visit_data:
                self._services.get_or_create(
                    service_name,
                    price=visit_data["price"],
                    duration=visit_data.get("duration", 30),
                    session=session
                )

            created_at = self._parse_datetime(
                visit_data.get("created_at"), "created_at"
            ) or datetime.utcnow()

            visit = Visit(
                customer_id=customer.id if customer else None,
                staff_id=staff.id if staff else None,
                service_name=service_name,
                status=visit_data.get("status", VISIT_STATUS_WAITING),
                created_at=created_at,
                started_at=self._parse_datetime(
                    visit_data.get("started_at"), "started_at"
                ),
                completed_at=self._parse_datetime(
                    visit_data.get("completed_at"), "completed_at"
                ),
            )
            session.add(visit)
            session.commit()
            session.refresh(visit)
            return visit.id

    def start(self, visit_id: int, when: Optional[datetime] = None,
              session: Optional[Session] = None) -> Optional[Visit]:
        """将记录标记为服务中。"""
        return self.update_by_id(
            Visit, visit_id, session=session,
            status=VISIT_STATUS_IN_PROGRESS,
            started_at=when or datetime.utcnow()
        )

    def complete(self, visit_id: int, when: Optional[datetime] = None,
                 session: Optional[Session] = None) -> Optional[Visit]:
        """将记录标记为完成。"""
        return self.update_by_id(
            Visit, visit_id, session=session,
            status=VISIT_STATUS_DONE,
            completed_at=when or datetime.utcnow()
        )

    def find(self, query: VisitQuery,
             session: Optional[Session] = None) -> List[VisitRecord]:
        """按条件查询服务记录，返回只读的 VisitRecord。

        Args:
            query: 查询条件。
            session: 外部会话（可选）。

        Returns:
            VisitRecord 列表，按登记时间排序（同一时间按ID）。
        """
        def _query(sess):
            q = sess.query(Visit).options(
                joinedload(Visit.customer), joinedload(Visit.staff)
            )
            if query.created_from is not None:
                q = q.filter(Visit.created_at >= query.created_from)
            if query.created_to is not None:
                q = q.filter(Visit.created_at < query.created_to)
            if query.statuses:
                q = q.filter(Visit.status.in_(list(query.statuses)))
            if query.customer_id is not None:
                q = q.filter(Visit.customer_id == query.customer_id)
            if query.staff_id is not None:
                q = q.filter(Visit.staff_id == query.staff_id)
            if query.service_name is not None:
                q = q.filter(Visit.service_name == query.service_name)
            if query.has_customer:
                q = q.filter(Visit.customer_id.isnot(None))
            if query.has_staff:
                q = q.filter(Visit.staff_id.isnot(None))
            if query.completed_only:
                q = q.filter(
                    Visit.status == VISIT_STATUS_DONE,
                    Visit.completed_at.isnot(None)
                )
            if query.newest_first:
                q = q.order_by(Visit.created_at.desc(), Visit.id.desc())
            else:
                q = q.order_by(Visit.created_at, Visit.id)
            if query.limit:
                q = q.limit(query.limit)
            return [self._to_record(v) for v in q.all()]

        if session:
            return _query(session)

        with self._get_session() as sess:
            records = _query(sess)
        logger.debug(f"Visit query returned {len(records)} records")
        return records

    @staticmethod
    def _to_record(visit: Visit) -> VisitRecord:
        return VisitRecord(
            id=visit.id,
            service_name=visit.service_name,
            status=visit.status,
            created_at=visit.created_at,
            customer_id=visit.customer_id,
            staff_id=visit.staff_id,
            started_at=visit.started_at,
            completed_at=visit.completed_at,
            customer_name=visit.customer.name if visit.customer else None,
            customer_phone=visit.customer.phone if visit.customer else None,
            staff_name=visit.staff.name if visit.staff else None,
        )

    @staticmethod
    def _parse_datetime(value: Any, field_name: str) -> Optional[datetime]:
        """解析时间值。

        Args:
            value: datetime、ISO 8601 字符串或 None。
            field_name: 字段名称（用于错误提示）。

        Returns:
            datetime 对象，未提供时返回 None。

        Raises:
            ValueError: 格式无效。
        """
        if value is None or value == "":
            return None
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                return datetime.fromisoformat(value)
            except ValueError:
                raise ValueError(
                    f"Invalid {field_name} format: {value}, "
                    f"expected ISO 8601"
                )
        raise ValueError(f"Invalid {field_name} type: {type(value).__name__}")
