"""实体仓库 —— 基础实体的数据访问层。

管理门店的基础实体（服务目录、员工、顾客），
每个仓库继承 BaseCRUD 获得通用能力，并添加领域特定的查询方法。
"""
from typing import Optional, List
from sqlalchemy import or_
from sqlalchemy.orm import Session

from .base_crud import BaseCRUD
from .connection import DatabaseConnection
from .models import Service, Staff, Customer


class ServiceRepository(BaseCRUD):
    """服务目录 仓库。

    服务名称唯一；服务记录按名称关联目录价格。
    """

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def get_or_create(self, name: str,
                      price: float = 0.0,
                      duration: int = 30,
                      session: Optional[Session] = None) -> Service:
        """获取或创建服务（按名称匹配）。

        已存在的服务不会被修改价格或时长。

        Args:
            name: 服务名称。
            price: 单价（仅创建时使用）。
            duration: 时长，分钟（仅创建时使用）。
            session: 外部会话（可选）。

        Returns:
            Service 对象。
        """
        def _do(sess):
            service = sess.query(Service).filter(Service.name == name).first()
            if not service:
                service = Service(name=name, price=price, duration=duration)
                sess.add(service)
                sess.flush()
                sess.refresh(service)
            return service

        if session:
            return _do(session)

        with self._get_session() as sess:
            service = _do(sess)
            sess.commit()
            service_id = service.id
        with self._get_session() as sess:
            return sess.query(Service).filter(Service.id == service_id).first()

    def get_active_services(self,
                            session: Optional[Session] = None) -> List[Service]:
        """获取所有上架服务（按目录顺序）。"""
        return self.get_all(Service, filters={"is_active": True}, session=session)

    def set_price(self, service_id: int, price: float,
                  session: Optional[Session] = None) -> Optional[Service]:
        """调整服务价格。"""
        return self.update_by_id(Service, service_id, session=session, price=price)

    def deactivate(self, service_id: int,
                   session: Optional[Session] = None) -> Optional[Service]:
        """下架服务。"""
        return self.update_by_id(
            Service, service_id, session=session, is_active=False
        )


class StaffRepository(BaseCRUD):
    """员工 仓库。"""

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def get_or_create(self, name: str,
                      session: Optional[Session] = None) -> Staff:
        """获取或创建员工（按姓名匹配）。

        Args:
            name: 员工姓名。
            session: 外部会话（可选）。

        Returns:
            Staff 对象。
        """
        def _do(sess):
            staff = sess.query(Staff).filter(Staff.name == name).first()
            if not staff:
                staff = Staff(name=name)
                sess.add(staff)
                sess.flush()
                sess.refresh(staff)
            return staff

        if session:
            return _do(session)

        with self._get_session() as sess:
            staff = _do(sess)
            sess.commit()
            staff_id = staff.id
        with self._get_session() as sess:
            return sess.query(Staff).filter(Staff.id == staff_id).first()

    def get_active_staff(self,
                         session: Optional[Session] = None) -> List[Staff]:
        """获取所有在职员工。"""
        return self.get_all(Staff, filters={"is_active": True}, session=session)

    def deactivate(self, staff_id: int,
                   session: Optional[Session] = None) -> Optional[Staff]:
        """停用员工。

        Args:
            staff_id: 员工ID。

        Returns:
            更新后的 Staff 对象。
        """
        return self.update_by_id(Staff, staff_id, session=session, is_active=False)


class CustomerRepository(BaseCRUD):
    """顾客 仓库。"""

    def __init__(self, conn: DatabaseConnection) -> None:
        super().__init__(conn)

    def get_or_create(self, name: str,
                      phone: Optional[str] = None,
                      session: Optional[Session] = None) -> Customer:
        """获取或创建顾客（按姓名匹配）。

        Args:
            name: 顾客姓名。
            phone: 联系电话（仅创建时使用）。
            session: 外部会话（可选）。

        Returns:
            Customer 对象。
        """
        def _do(sess):
            customer = sess.query(Customer).filter(
                Customer.name == name
            ).first()
            if not customer:
                customer = Customer(name=name, phone=phone)
                sess.add(customer)
                sess.flush()
                sess.refresh(customer)
            return customer

        if session:
            return _do(session)

        with self._get_session() as sess:
            customer = _do(sess)
            sess.commit()
            customer_id = customer.id
        with self._get_session() as sess:
            return sess.query(Customer).filter(
                Customer.id == customer_id
            ).first()

    def search(self, keyword: str,
               session: Optional[Session] = None) -> List[Customer]:
        """按姓名或电话搜索顾客。"""
        def _query(sess):
            return sess.query(Customer).filter(
                or_(
                    Customer.name.contains(keyword),
                    Customer.phone.contains(keyword)
                )
            ).all()

        if session:
            return _query(session)

        with self._get_session() as sess:
            return _query(sess)
