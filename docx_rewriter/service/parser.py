"""文档解析服务."""

from typing import List, Tuple

from loguru import logger

from docx_rewriter.data.document_io import DocxPackage
from docx_rewriter.data.models import TextRun
from docx_rewriter.data.placeholder_detector import HighlightDetector, RunDetector
from docx_rewriter.data.xml_text import decode_entities, extract_text_from_xml
from docx_rewriter.errors import DocumentValidationError


class DocumentParser:
    """文档解析器."""

    def __init__(self) -> None:
        """初始化文档解析器."""
        self.highlight_detector = HighlightDetector()
        self.run_detector = RunDetector()

    def parse_instruction(self, data: bytes, name: str = "instruction.docx") -> str:
        """提取指令文档的纯文本.

        Args:
            data: 指令文档内容
            name: 文件名

        Returns:
            指令文本（已解码XML实体）

        Raises:
            DocumentValidationError: 文档无效或没有文本
        """
        package = DocxPackage.from_bytes(data, name=name, label="Instruction")
        instruction_xml = package.document_xml(label="Instruction")
        instruction = decode_entities(extract_text_from_xml(instruction_xml))
        if not instruction:
            raise DocumentValidationError("Could not extract text from instruction prompt file")
        logger.info(f"指令文本长度: {len(instruction)} 字符")
        return instruction

    def parse_client(self, data: bytes, name: str = "client.docx") -> Tuple[DocxPackage, str]:
        """加载客户文档.

        Returns:
            文档包和 document.xml 内容的元组

        Raises:
            DocumentValidationError: 文档无效
        """
        package = DocxPackage.from_bytes(data, name=name, label="Client data")
        return package, package.document_xml(label="Client data")

    def find_sections(self, document_xml: str) -> Tuple[List[TextRun], bool]:
        """查找待替换的文本块.

        优先使用高亮文本块；没有高亮时返回全部非空文本块，交由模型自动识别。

        Returns:
            文本块列表和是否为自动识别模式的元组
        """
        sections = self.highlight_detector.detect(document_xml)
        if sections:
            return sections, False

        logger.info("未找到高亮文本，切换到自动识别模式")
        return self.run_detector.detect(document_xml), True
