"""异常定义.

所有异常信息都会原样展示给最终用户，因此使用简洁的英文描述。
"""

from typing import Optional


class DocumentValidationError(ValueError):
    """输入文档无效（签名错误、无法解析、缺少必要部件等）."""


class NoPlaceholdersError(ValueError):
    """文档中没有可替换的内容，由用户自行修正."""


class GenerationError(RuntimeError):
    """文本生成服务返回失败."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(GenerationError):
    """限流（429）或额度耗尽（402），重试次数用尽后抛出."""


class ResponseFormatError(GenerationError):
    """生成服务未按约定返回结构化调用，不重试."""


class ImageGenerationError(RuntimeError):
    """图表图片生成失败，仅在图表阶段内部使用."""
