"""文本块扫描器.

按文档顺序遍历 document.xml 中的 w:r 元素，生成 TextRun 记录。
"""

import re
from typing import Iterator, List, Tuple

from loguru import logger

from docx_rewriter.config.settings import settings
from docx_rewriter.data.context_extractor import ContextExtractor
from docx_rewriter.data.models import TextRun
from docx_rewriter.data.xml_text import TEXT_NODE_PATTERN, decode_entities

RUN_OPEN_PATTERN = re.compile(r"<w:r(?:\s[^>]*)?>")
RUN_CLOSE = "</w:r>"

# 高亮标记的颜色值，"none" 表示高亮已被清除
HIGHLIGHT_PATTERN = re.compile(r"<w:highlight\b([^>]*)>")
HIGHLIGHT_VALUE_PATTERN = re.compile(r"\bw:val=\"([^\"]*)\"")
SHADING_FILL_PATTERN = re.compile(r"<w:shd\b[^>]*\bw:fill=\"([0-9A-Fa-f]{6}|[a-z]+)\"")


def _iter_run_markup(document_xml: str) -> Iterator[Tuple[int, int]]:
    """依次返回每个最内层 w:r 的匹配区间.

    图形、文本框等容器内部嵌套的 w:r 会跳过外层，只返回内层文本块。
    """
    pos = 0
    while True:
        open_match = RUN_OPEN_PATTERN.search(document_xml, pos)
        if open_match is None:
            return
        close_pos = document_xml.find(RUN_CLOSE, open_match.end())
        if close_pos == -1:
            return
        nested = RUN_OPEN_PATTERN.search(document_xml, open_match.end(), close_pos)
        if nested is not None:
            pos = nested.start()
            continue
        end = close_pos + len(RUN_CLOSE)
        yield open_match.start(), end
        pos = end


def has_highlight(run_markup: str) -> bool:
    """判断文本块是否带有高亮或非自动底纹."""
    for attrs in HIGHLIGHT_PATTERN.findall(run_markup):
        value = HIGHLIGHT_VALUE_PATTERN.search(attrs)
        if value is None or value.group(1).lower() != "none":
            return True
    for fill in SHADING_FILL_PATTERN.findall(run_markup):
        if fill.lower() not in ("auto", "ffffff"):
            return True
    return False


def run_text(run_markup: str) -> str:
    """拼接文本块内所有 w:t 节点并解码实体."""
    return decode_entities("".join(TEXT_NODE_PATTERN.findall(run_markup)))


def scan_runs(
    document_xml: str,
    highlighted_only: bool = False,
    context_window: int = None,
    context_size: int = None,
) -> List[TextRun]:
    """扫描文档XML中的文本块.

    上下文在当前文本块压入缓冲区之前计算，因此不包含自身文本。
    空白文本块直接跳过。

    Args:
        document_xml: word/document.xml 内容
        highlighted_only: 为True时只返回高亮的文本块
        context_window: 缓冲区大小，默认取配置
        context_size: 上下文记录的文本块数，默认取配置

    Returns:
        按文档顺序排列的 TextRun 列表
    """
    extractor = ContextExtractor(
        context_window or settings.document.context_window,
        context_size if context_size is not None else settings.document.context_size,
    )
    runs = []
    index = 0
    for start, end in _iter_run_markup(document_xml):
        markup = document_xml[start:end]
        text = run_text(markup)
        if not text.strip():
            continue

        highlighted = has_highlight(markup)
        context = extractor.current_context()
        extractor.push(text)

        if not highlighted_only or highlighted:
            runs.append(TextRun(
                index=index,
                text=text,
                context=context,
                raw_markup=markup,
                is_highlighted=highlighted,
                start=start,
            ))
        index += 1

    mode = "高亮" if highlighted_only else "全部"
    logger.debug(f"扫描完成（{mode}模式），共 {len(runs)} 个文本块")
    return runs
