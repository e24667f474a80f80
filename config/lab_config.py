"""
技工所业务配置接口 - 支持可替换的业务配置

新技工所可以实现自己的业务配置（支出分类、产品目录、角色页面），替换默认配置。
"""
from abc import ABC, abstractmethod
from typing import List, Dict, Any


ALL_PAGES = [
    "dashboard", "orders", "work_schedule", "technicians",
    "accounting", "clients", "expenses", "users", "settings",
]


class LabConfig(ABC):
    """技工所业务配置抽象基类"""

    @abstractmethod
    def get_expense_categories(self) -> List[str]:
        """获取固定的支出分类列表"""
        pass

    @abstractmethod
    def get_prosthesis_types(self) -> List[Dict[str, Any]]:
        """获取初始化用的修复体类型目录"""
        pass

    @abstractmethod
    def get_role_pages(self) -> Dict[str, List[str]]:
        """获取各角色可访问的页面"""
        pass

    @abstractmethod
    def get_seed_users(self) -> List[Dict[str, Any]]:
        """获取初始化用的系统账号"""
        pass


class DentalLabConfig(LabConfig):
    """义齿加工所默认业务配置"""

    def get_expense_categories(self) -> List[str]:
        return [
            "材料", "设备", "维修保养", "房租", "电费", "水费",
            "网络", "电话", "快递", "文具", "清洁", "其他",
        ]

    def get_prosthesis_types(self) -> List[Dict[str, Any]]:
        return [
            {"name": "全瓷冠", "base_price": 800.0, "model_price": 150.0, "category": "fixed"},
            {"name": "烤瓷冠", "base_price": 500.0, "model_price": 150.0, "category": "fixed"},
            {"name": "氧化锆桥", "base_price": 1200.0, "model_price": 200.0, "category": "fixed"},
            {"name": "嵌体", "base_price": 400.0, "model_price": None, "category": "fixed"},
            {"name": "全口义齿", "base_price": 2000.0, "model_price": 300.0, "category": "removable"},
            {"name": "局部义齿", "base_price": 1500.0, "model_price": 250.0, "category": "removable"},
            {"name": "种植上部结构", "base_price": 2500.0, "model_price": 300.0, "category": "implant"},
        ]

    def get_role_pages(self) -> Dict[str, List[str]]:
        return {
            "admin": list(ALL_PAGES),
            "technician": ["dashboard", "orders"],
            "accountant": ["dashboard", "accounting", "clients", "expenses"],
        }

    def get_seed_users(self) -> List[Dict[str, Any]]:
        return [
            {
                "username": "admin",
                "password": "admin123",
                "role": "admin",
                "name": "系统管理员",
                "can_view_prices": True,
            },
        ]


# 全局业务配置实例（可以在 app.py 中替换）
lab_config: LabConfig = DentalLabConfig()
