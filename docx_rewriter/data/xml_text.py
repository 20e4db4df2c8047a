"""WordprocessingML 文本工具."""

import re

# 仅匹配 <w:t> 与 <w:t xml:space="preserve">，不会误匹配 <w:tab/>、<w:tbl>
TEXT_NODE_PATTERN = re.compile(r"<w:t(?:\s[^>]*)?>([^<]*)</w:t>")

_ENTITY_PATTERN = re.compile(r"&(#x[0-9a-fA-F]+|#[0-9]+|amp|lt|gt|quot|apos);")
_NAMED_ENTITIES = {"amp": "&", "lt": "<", "gt": ">", "quot": '"', "apos": "'"}


def extract_text_from_xml(xml_content: str) -> str:
    """提取XML中所有 w:t 文本节点的内容.

    按文档顺序以单个空格连接，不做实体解码。

    Args:
        xml_content: WordprocessingML XML字符串

    Returns:
        连接后的文本，没有文本节点时返回空字符串
    """
    texts = [match.group(1) for match in TEXT_NODE_PATTERN.finditer(xml_content)]
    return " ".join(texts).strip()


def decode_entities(text: str) -> str:
    """解码XML预定义实体和数字字符引用."""

    def _replace(match: "re.Match") -> str:
        entity = match.group(1)
        if entity.startswith("#x"):
            return chr(int(entity[2:], 16))
        if entity.startswith("#"):
            return chr(int(entity[1:]))
        return _NAMED_ENTITIES[entity]

    return _ENTITY_PATTERN.sub(_replace, text)


def escape_xml(text: str) -> str:
    """转义XML保留字符."""
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )
