"""XML回写器.

把替换结果写回 document.xml，同时去掉被编辑文本块及其所在段落的高亮和底纹。
"""

import re
from typing import List, Tuple

from loguru import logger

from docx_rewriter.data.models import Replacement
from docx_rewriter.data.xml_text import escape_xml

_TEXT_NODE = re.compile(r"<w:t(\s[^>]*)?>[^<]*</w:t>")
_PARAGRAPH_OPEN = re.compile(r"<w:p(?:\s[^>]*)?(?<!/)>")
_PARAGRAPH_CLOSE = "</w:p>"

_FORMAT_PATTERNS = [
    re.compile(r"<w:highlight\b[^>]*/>|<w:highlight\b[^>]*>.*?</w:highlight>", re.DOTALL),
    re.compile(r"<w:shd\b[^>]*/>|<w:shd\b[^>]*>.*?</w:shd>", re.DOTALL),
]


def strip_highlight(xml: str) -> str:
    """去除XML片段中的高亮和底纹元素."""
    for pattern in _FORMAT_PATTERNS:
        xml = pattern.sub("", xml)
    return xml


def build_replacement_run(raw_markup: str, new_text: str) -> str:
    """根据原始文本块生成新的文本块.

    第一个 w:t 写入转义后的新文本，其余 w:t 清空，再去除高亮和底纹。

    Args:
        raw_markup: 原始 w:r 片段
        new_text: 新文本（未转义）

    Returns:
        新的 w:r 片段
    """
    escaped = escape_xml(new_text)
    written = False

    def _replace_text_node(match: "re.Match") -> str:
        nonlocal written
        attrs = match.group(1) or ""
        if written:
            return f"<w:t{attrs}></w:t>"
        written = True
        if escaped != escaped.strip() and "xml:space" not in attrs:
            attrs += ' xml:space="preserve"'
        return f"<w:t{attrs}>{escaped}</w:t>"

    new_run = _TEXT_NODE.sub(_replace_text_node, raw_markup)
    return strip_highlight(new_run)


def _paragraph_ranges(xml: str) -> List[Tuple[int, int]]:
    """按嵌套层级配对段落的起止位置，文本框内的段落单独成对."""
    tokens = sorted(
        [(m.start(), True) for m in _PARAGRAPH_OPEN.finditer(xml)]
        + [(m.start(), False) for m in re.finditer(re.escape(_PARAGRAPH_CLOSE), xml)]
    )
    stack = []
    ranges = []
    for pos, is_open in tokens:
        if is_open:
            stack.append(pos)
        elif stack:
            ranges.append((stack.pop(), pos + len(_PARAGRAPH_CLOSE)))
    return ranges


def _paragraph_spans(xml: str, offsets: List[int]) -> List[Tuple[int, int]]:
    """找到真正包含各偏移位置的最内层段落区间，重叠区间会合并."""
    ranges = _paragraph_ranges(xml)
    spans = []
    for offset in offsets:
        enclosing = [r for r in ranges if r[0] <= offset < r[1]]
        if enclosing:
            spans.append(max(enclosing, key=lambda r: r[0]))

    merged = []
    for start, end in sorted(set(spans)):
        if merged and start < merged[-1][1]:
            merged[-1] = (merged[-1][0], max(end, merged[-1][1]))
        else:
            merged.append((start, end))
    return merged


def strip_paragraph_highlights(xml: str, offsets: List[int]) -> str:
    """去除包含指定位置的段落中所有高亮和底纹（包括列表符号和相邻文本块）."""
    # 从后往前处理，前面区间的偏移不受影响
    for start, end in reversed(_paragraph_spans(xml, offsets)):
        xml = xml[:start] + strip_highlight(xml[start:end]) + xml[end:]
    return xml


def apply_replacements(document_xml: str, replacements: List[Replacement]) -> str:
    """把替换结果应用到文档XML.

    按文档顺序逐个定位原始文本块（按内容匹配，从上一次编辑位置之后查找），
    每个替换只应用一次；相同片段在文档中重复出现时不会被误改。

    Args:
        document_xml: 原始 document.xml
        replacements: 替换结果列表

    Returns:
        修改后的 document.xml；替换列表为空时原样返回
    """
    if not replacements:
        return document_xml

    if all(r.start >= 0 for r in replacements):
        ordered = sorted(replacements, key=lambda r: r.start)
    else:
        ordered = list(replacements)

    pieces = []
    edited_offsets = []
    cursor = 0
    out_len = 0
    for replacement in ordered:
        if replacement.start >= cursor and document_xml.startswith(replacement.raw_markup, replacement.start):
            idx = replacement.start
        else:
            idx = document_xml.find(replacement.raw_markup, cursor)
        if idx == -1:
            logger.warning(f"未找到原始文本块，跳过替换: '{replacement.original_text}'")
            continue

        new_run = build_replacement_run(replacement.raw_markup, replacement.new_text)
        pieces.append(document_xml[cursor:idx])
        out_len += idx - cursor
        edited_offsets.append(out_len)
        pieces.append(new_run)
        out_len += len(new_run)
        cursor = idx + len(replacement.raw_markup)
        logger.debug(f"已将 '{replacement.original_text}' 替换为 '{replacement.new_text}'")
    pieces.append(document_xml[cursor:])

    modified = "".join(pieces)
    modified = strip_paragraph_highlights(modified, edited_offsets)
    logger.info(f"共回写 {len(edited_offsets)}/{len(replacements)} 处替换")
    return modified
