"""测试公共夹具."""

import io
import zipfile
from typing import Dict, List, Optional, Tuple
from unittest.mock import MagicMock

import pytest
from docx import Document
from docx.enum.text import WD_COLOR_INDEX

# 段落定义：[(文本, 是否高亮), ...]
Paragraph = List[Tuple[str, bool]]


def build_docx(paragraphs: List[Paragraph]) -> bytes:
    """用 python-docx 生成测试文档."""
    doc = Document()
    for runs in paragraphs:
        para = doc.add_paragraph()
        for text, highlighted in runs:
            run = para.add_run(text)
            if highlighted:
                run.font.highlight_color = WD_COLOR_INDEX.YELLOW
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


def read_part(data: bytes, name: str = "word/document.xml") -> str:
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        return archive.read(name).decode("utf-8")


def build_package(parts: Dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, data in parts.items():
            archive.writestr(name, data)
    return buffer.getvalue()


def run_xml(text: str, highlighted: bool = False, rsid: Optional[str] = None) -> str:
    attrs = f' w:rsidR="{rsid}"' if rsid else ""
    props = '<w:rPr><w:highlight w:val="yellow"/></w:rPr>' if highlighted else ""
    return f"<w:r{attrs}>{props}<w:t xml:space=\"preserve\">{text}</w:t></w:r>"


def document_xml(*paragraphs: str) -> str:
    body = "".join(f"<w:p>{p}</w:p>" for p in paragraphs)
    return (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
        '<w:document xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main" '
        'xmlns:r="http://schemas.openxmlformats.org/officeDocument/2006/relationships">'
        f"<w:body>{body}<w:sectPr/></w:body></w:document>"
    )


@pytest.fixture
def instruction_docx():
    """指令文档."""
    return build_docx([[("Replace preparer name with standard name; use realistic percentage variations", False)]])


@pytest.fixture
def client_docx():
    """包含两个高亮占位符的客户文档."""
    return build_docx([
        [("Prepared by: ", False), ("Roshan", True)],
        [("Your portfolio holds ", False), ("40%", True), (" in defensive assets.", False)],
        [("Kind regards", False)],
    ])


@pytest.fixture
def mock_llm_client():
    """模拟大模型客户端."""
    return MagicMock()


@pytest.fixture
def mock_market_data():
    """模拟行情数据."""
    market_data = MagicMock()
    market_data.get_context.return_value = "Current date: 16 October 2026\nASX 200: 8,900.00 (+0.40%)"
    return market_data
