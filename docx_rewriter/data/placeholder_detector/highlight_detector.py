"""高亮占位符检测器."""

from typing import List

from loguru import logger

from docx_rewriter.data.models import TextRun
from docx_rewriter.data.placeholder_detector.base_detector import PlaceholderDetector
from docx_rewriter.data.run_scanner import scan_runs


class HighlightDetector(PlaceholderDetector):
    """高亮占位符检测器.

    作者用高亮或底纹标记的文本块即为占位符。
    """

    def detect(self, document_xml: str) -> List[TextRun]:
        runs = scan_runs(document_xml, highlighted_only=True)
        logger.info(f"找到 {len(runs)} 个高亮文本块")
        return runs
