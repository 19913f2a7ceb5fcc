"""数据库存储适配器。

把仓库层包装成洞察引擎需要的 VisitStore / CatalogStore 协议实现，
并把 SQLAlchemy 异常统一转换为 DataUnavailableError。
"""
from typing import List

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError

from .business_repos import VisitRepository
from .entity_repos import ServiceRepository, StaffRepository
from .models import Service, Staff
from insights.errors import DataUnavailableError
from insights.stores import CatalogEntry, StaffEntry, VisitQuery, VisitRecord


class SqlVisitStore:
    """基于 VisitRepository 的 VisitStore 实现。"""

    def __init__(self, visits: VisitRepository) -> None:
        self._visits = visits

    def query_visits(self, query: VisitQuery) -> List[VisitRecord]:
        try:
            return self._visits.find(query)
        except SQLAlchemyError as e:
            logger.error(f"Visit query failed: {e}")
            raise DataUnavailableError(f"Visit query failed: {e}") from e


class SqlCatalogStore:
    """基于实体仓库的 CatalogStore 实现。"""

    def __init__(self, services: ServiceRepository,
                 staff: StaffRepository) -> None:
        self._services = services
        self._staff = staff

    def list_services(self, active_only: bool = False) -> List[CatalogEntry]:
        filters = {"is_active": True} if active_only else None
        try:
            rows = self._services.get_all(Service, filters=filters)
        except SQLAlchemyError as e:
            logger.error(f"Catalog query failed: {e}")
            raise DataUnavailableError(f"Catalog query failed: {e}") from e
        return [
            CatalogEntry(
                service_id=s.id,
                service_name=s.name,
                price=float(s.price or 0),
                duration=int(s.duration or 0),
                is_active=bool(s.is_active),
            )
            for s in rows
        ]

    def list_staff(self, active_only: bool = False) -> List[StaffEntry]:
        filters = {"is_active": True} if active_only else None
        try:
            rows = self._staff.get_all(Staff, filters=filters)
        except SQLAlchemyError as e:
            logger.error(f"Staff query failed: {e}")
            raise DataUnavailableError(f"Staff query failed: {e}") from e
        return [
            StaffEntry(staff_id=s.id, name=s.name, is_active=bool(s.is_active))
            for s in rows
        ]
