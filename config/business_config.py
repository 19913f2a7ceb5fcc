"""
业务配置接口 - 支持可替换的业务配置

新门店可以实现自己的业务配置，替换默认的理发店配置。
洞察引擎通过此接口获取基础服务白名单、每小时营收基准等经营常量。
"""
from abc import ABC, abstractmethod
from typing import List, Dict, Any


class BusinessConfig(ABC):
    """业务配置抽象基类"""

    @abstractmethod
    def get_service_types(self) -> List[Dict[str, Any]]:
        """获取服务目录种子数据"""
        pass

    @abstractmethod
    def get_staff_names(self) -> List[str]:
        """获取初始员工名单"""
        pass

    @abstractmethod
    def get_basic_services(self) -> List[str]:
        """获取基础服务名称（爽约预测中的"只做基础项目"因子）"""
        pass

    @abstractmethod
    def get_revenue_per_hour_benchmark(self) -> float:
        """获取每小时营收基准（定价建议使用）"""
        pass


class SalonConfig(BusinessConfig):
    """理发店业务配置"""

    def get_service_types(self) -> List[Dict[str, Any]]:
        return [
            {"name": "Haircut", "price": 25.0, "duration": 30},
            {"name": "Beard Trim", "price": 15.0, "duration": 15},
            {"name": "Hair Wash", "price": 10.0, "duration": 15},
            {"name": "Hair Color", "price": 80.0, "duration": 90},
            {"name": "Hot Towel Shave", "price": 35.0, "duration": 30},
            {"name": "Hair Treatment", "price": 60.0, "duration": 45},
        ]

    def get_staff_names(self) -> List[str]:
        return ["Alex", "Jordan", "Sam"]

    def get_basic_services(self) -> List[str]:
        return ["Haircut", "Beard Trim"]

    def get_revenue_per_hour_benchmark(self) -> float:
        return 50.0


# 默认业务配置
business_config: BusinessConfig = SalonConfig()
