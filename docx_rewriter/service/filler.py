"""文档填充服务."""

import datetime
from typing import List, Optional

from loguru import logger

from docx_rewriter.config.settings import settings
from docx_rewriter.data.allocation_inferencer import infer_allocation, infer_performance_series
from docx_rewriter.data.document_io import DOCUMENT_PART, DocxPackage
from docx_rewriter.data.models import Replacement
from docx_rewriter.data.xml_rewriter import apply_replacements


class DocumentFillerService:
    """文档填充服务.

    把替换结果写回文档包，并按需重绘图表。
    """

    def __init__(self, chart_renderer=None, enable_charts: Optional[bool] = None):
        """初始化文档填充服务.

        Args:
            chart_renderer: 图表重绘服务，为None时不重绘图表
            enable_charts: 是否重绘图表，默认取配置
        """
        self.chart_renderer = chart_renderer
        self.enable_charts = settings.document.charts_enabled if enable_charts is None else enable_charts

    def fill_document(
        self,
        package: DocxPackage,
        document_xml: str,
        replacements: List[Replacement],
        today: Optional[datetime.date] = None,
    ) -> DocxPackage:
        """把替换结果写回文档包.

        Args:
            package: 客户文档包
            document_xml: 原始 document.xml
            replacements: 替换结果
            today: 业绩曲线的截止日期

        Returns:
            更新后的文档包
        """
        modified_xml = apply_replacements(document_xml, replacements)
        package.write(DOCUMENT_PART, modified_xml)

        if self.enable_charts and self.chart_renderer is not None:
            self.regenerate_charts(package, document_xml, replacements, today)

        logger.info(f"文档填充完成: {package.name}")
        return package

    def regenerate_charts(
        self,
        package: DocxPackage,
        document_xml: str,
        replacements: List[Replacement],
        today: Optional[datetime.date] = None,
    ) -> None:
        """按推断出的数据重绘图表.

        图表只是增强输出，任何异常都只记录日志，不影响文档处理结果。
        """
        try:
            facts = infer_allocation(replacements, document_xml)
            if facts is not None:
                self.chart_renderer.render_allocation(package, facts)

            series = infer_performance_series(replacements, as_of=today)
            if series is not None:
                self.chart_renderer.render_performance(package, series)
        except Exception as e:
            logger.warning(f"图表重绘失败，已跳过: {e}")
