"""全文文本块检测器."""

from typing import List

from loguru import logger

from docx_rewriter.data.models import TextRun
from docx_rewriter.data.placeholder_detector.base_detector import PlaceholderDetector
from docx_rewriter.data.run_scanner import scan_runs


class RunDetector(PlaceholderDetector):
    """返回全部非空文本块，用于没有高亮标记时的自动识别模式."""

    def detect(self, document_xml: str) -> List[TextRun]:
        runs = scan_runs(document_xml, highlighted_only=False)
        logger.info(f"自动识别模式：共 {len(runs)} 个候选文本块")
        return runs
