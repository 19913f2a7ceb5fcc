"""洞察引擎异常定义。

- InsightError：所有洞察异常的基类，携带机器可读的 code
- DataUnavailableError：底层存储不可用或查询失败
- InvalidCategoryError：请求了不存在的洞察分类
"""
from typing import List, Optional


class InsightError(Exception):
    """洞察异常基类。

    Attributes:
        code: 机器可读的错误码。
        message: 可读的错误描述。
    """

    code = "INSIGHT_ERROR"
    default_message = "Insight generation failed"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def as_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class DataUnavailableError(InsightError):
    """存储查询失败。"""

    code = "DATA_UNAVAILABLE"
    default_message = "Visit or catalog data is unavailable"


class InvalidCategoryError(InsightError):
    """未知的洞察分类。

    Attributes:
        category: 请求的分类。
        valid_categories: 合法分类列表。
    """

    code = "INVALID_CATEGORY"

    def __init__(self, category: str, valid_categories: List[str]) -> None:
        self.category = category
        self.valid_categories = list(valid_categories)
        super().__init__(
            f"Invalid category: {category}. "
            f"Valid categories: {', '.join(self.valid_categories)}"
        )

    def as_dict(self) -> dict:
        data = super().as_dict()
        data["validCategories"] = self.valid_categories
        return data
