"""占位符检测器基类."""

from abc import ABC, abstractmethod
from typing import List

from docx_rewriter.data.models import TextRun


class PlaceholderDetector(ABC):
    """占位符检测器基类."""

    @abstractmethod
    def detect(self, document_xml: str) -> List[TextRun]:
        """检测文档中需要替换的文本块.

        Args:
            document_xml: word/document.xml 内容

        Returns:
            按文档顺序排列的文本块列表
        """
        pass
