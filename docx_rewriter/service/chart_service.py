"""图表重绘服务.

根据推断出的资产配置或业绩曲线生成新的图表图片，然后替换文档中已有的图表图片，
找不到可替换的图片时在相关段落之后插入新图片。整个过程尽力而为，失败只记录日志。
"""

import re
from typing import Dict, List, Optional

from loguru import logger

from docx_rewriter.config.settings import settings
from docx_rewriter.data.document_io import (
    CONTENT_TYPES_PART,
    DOCUMENT_PART,
    DOCUMENT_RELS_PART,
    DocxPackage,
)
from docx_rewriter.data.models import AllocationFacts, PerformancePoint
from docx_rewriter.data.xml_text import escape_xml
from docx_rewriter.errors import ImageGenerationError

MEDIA_PREFIX = "word/media/"
IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif")
# 文件名包含这些字样的图片不是图表
EXCLUDED_NAME_HINTS = ("logo", "header", "footer", "signature")

ALLOCATION_CONTEXT_PATTERN = re.compile(r"asset\s+allocation|growth\s+assets|defensive\s+assets|allocation", re.IGNORECASE)
PERFORMANCE_CONTEXT_PATTERN = re.compile(r"performance|portfolio\s+value", re.IGNORECASE)

IMAGE_RELATIONSHIP_TYPE = "http://schemas.openxmlformats.org/officeDocument/2006/relationships/image"
_RELATIONSHIP_TAG = re.compile(r"<Relationship\b[^>]*/?>")
_ATTRIBUTE = re.compile(r'([\w:]+)="([^"]*)"')
_RELATIONSHIP_ID = re.compile(r'Id="rId(\d+)"')
_MEDIA_INDEX = re.compile(r"^word/media/image(\d+)\.", re.IGNORECASE)
_DOC_PR_ID = re.compile(r'<wp:docPr\b[^>]*\bid="(\d+)"')
_EMBED_ID = re.compile(r'r:embed="(rId\d+)"')

PALETTE = ("#1F3A5F", "#2A9D8F")

# 插入图片的尺寸（EMU，1英寸 = 914400）
CHART_WIDTH_EMU = 4114800
CHART_HEIGHT_EMU = 3086100

DRAWING_TEMPLATE = (
    '<w:p><w:pPr><w:jc w:val="center"/></w:pPr><w:r><w:drawing>'
    '<wp:inline distT="0" distB="0" distL="0" distR="0" '
    'xmlns:wp="http://schemas.openxmlformats.org/drawingml/2006/wordprocessingDrawing">'
    '<wp:extent cx="{cx}" cy="{cy}"/>'
    '<wp:docPr id="{doc_pr_id}" name="{name}"/>'
    '<wp:cNvGraphicFramePr/>'
    '<a:graphic xmlns:a="http://schemas.openxmlformats.org/drawingml/2006/main">'
    '<a:graphicData uri="http://schemas.openxmlformats.org/drawingml/2006/picture">'
    '<pic:pic xmlns:pic="http://schemas.openxmlformats.org/drawingml/2006/picture">'
    '<pic:nvPicPr><pic:cNvPr id="0" name="{file_name}"/><pic:cNvPicPr/></pic:nvPicPr>'
    '<pic:blipFill><a:blip r:embed="{rel_id}" '
    'xmlns:r="http://schemas.openxmlformats.org/officeDocument/2006/relationships"/>'
    '<a:stretch><a:fillRect/></a:stretch></pic:blipFill>'
    '<pic:spPr><a:xfrm><a:off x="0" y="0"/><a:ext cx="{cx}" cy="{cy}"/></a:xfrm>'
    '<a:prstGeom prst="rect"><a:avLst/></a:prstGeom></pic:spPr>'
    '</pic:pic></a:graphicData></a:graphic></wp:inline></w:drawing></w:r></w:p>'
    '<w:p><w:pPr><w:jc w:val="center"/></w:pPr><w:r><w:rPr><w:i/></w:rPr>'
    '<w:t xml:space="preserve">{caption}</w:t></w:r></w:p>'
)


def _fmt(value: float) -> str:
    return f"{value:g}"


def allocation_chart_prompt(facts: AllocationFacts) -> str:
    """资产配置饼图的图片描述."""
    growth_label, defensive_label = facts.labels
    return (
        "Create a clean, professional pie chart image for a financial advice document.\n"
        f"- Exactly two slices: \"{growth_label}\" {_fmt(facts.growth_percent)}% "
        f"in {PALETTE[0]} and \"{defensive_label}\" {_fmt(facts.defensive_percent)}% in {PALETTE[1]}.\n"
        "- Flat 2D style only: no 3D effects, shadows, gradients or exploded slices.\n"
        "- Show each percentage as a bold white label on its slice.\n"
        "- Small legend in the bottom right corner listing both slices.\n"
        "- Plain white background, no title, no other text.\n"
        "- Landscape 4:3 aspect ratio, PNG."
    )


def performance_chart_prompt(series: List[PerformancePoint]) -> str:
    """业绩曲线折线图的图片描述."""
    points = "\n".join(f"  {p.label}: ${p.value:,.0f}" for p in series)
    return (
        "Create a clean, professional line chart image for a financial advice document.\n"
        f"- Single line in {PALETTE[0]} with small circular markers, light {PALETTE[1]} fill under the line.\n"
        "- Data points (x label: portfolio value):\n"
        f"{points}\n"
        "- Flat 2D style, thin light-grey horizontal gridlines, dollar-formatted y axis.\n"
        "- Plain white background, no title, small legend reading \"Portfolio value\".\n"
        "- Landscape 16:9 aspect ratio, PNG."
    )


def parse_relationships(rels_xml: str) -> List[Dict[str, str]]:
    """解析关系文件中的所有 Relationship 条目."""
    return [dict(_ATTRIBUTE.findall(tag)) for tag in _RELATIONSHIP_TAG.findall(rels_xml)]


def next_relationship_id(rels_xml: str) -> str:
    numbers = [int(n) for n in _RELATIONSHIP_ID.findall(rels_xml)]
    return f"rId{max(numbers, default=0) + 1}"


def next_media_name(package: DocxPackage) -> str:
    numbers = [int(m.group(1)) for m in map(_MEDIA_INDEX.match, package.names()) if m]
    return f"{MEDIA_PREFIX}image{max(numbers, default=0) + 1}.png"


def ensure_png_content_type(content_types_xml: str) -> str:
    """确保 [Content_Types].xml 声明了 png 扩展名."""
    if re.search(r'Extension="png"', content_types_xml, re.IGNORECASE):
        return content_types_xml
    default = '<Default Extension="png" ContentType="image/png"/>'
    return content_types_xml.replace("</Types>", default + "</Types>", 1)


class ChartRenderer:
    """图表重绘服务."""

    def __init__(self, llm_client=None, header_zone_chars: Optional[int] = None):
        """初始化图表重绘服务.

        Args:
            llm_client: 大模型客户端，如果为None则自动创建
            header_zone_chars: 文档开头视为信头区域的字符数，其中的图片不会被替换
        """
        if llm_client is None:
            from docx_rewriter.service.llm_client import LLMClient
            self.llm_client = LLMClient()
        else:
            self.llm_client = llm_client
        self.header_zone_chars = (
            settings.document.header_zone_chars if header_zone_chars is None else header_zone_chars
        )

    def render_allocation(self, package: DocxPackage, facts: AllocationFacts) -> bool:
        """重绘资产配置饼图.

        Returns:
            是否成功更新了文档包
        """
        growth_label, defensive_label = facts.labels
        caption = (
            f"Asset allocation: {_fmt(facts.growth_percent)}% {growth_label.lower()} / "
            f"{_fmt(facts.defensive_percent)}% {defensive_label.lower()}"
        )
        return self._render(
            package,
            allocation_chart_prompt(facts),
            ALLOCATION_CONTEXT_PATTERN,
            caption,
            "Asset allocation chart",
        )

    def render_performance(self, package: DocxPackage, series: List[PerformancePoint]) -> bool:
        """插入业绩曲线图.

        不替换文档原有图片，只更新之前插入过的业绩曲线图。
        """
        caption = f"Portfolio value: {series[0].label} to {series[-1].label}"
        return self._render(
            package,
            performance_chart_prompt(series),
            PERFORMANCE_CONTEXT_PATTERN,
            caption,
            "Performance chart",
            allow_replace=False,
        )

    def _render(
        self,
        package: DocxPackage,
        prompt: str,
        context_pattern: "re.Pattern",
        caption: str,
        name: str,
        allow_replace: bool = True,
    ) -> bool:
        document_xml = package.read_text(DOCUMENT_PART)
        anchor_match = context_pattern.search(document_xml)
        anchor = anchor_match.start() if anchor_match else None

        # 之前处理时插入过的同名图表直接替换，重复处理不会叠加新图
        target = self.find_generated_image(package, name)
        if target is None and allow_replace:
            target = self.find_replaceable_image(package, anchor)
        if target is None and anchor is None:
            logger.info(f"{name}: 文档中没有可替换的图片，也没有找到插入位置，跳过")
            return False

        try:
            image = self.llm_client.generate_image(prompt)
        except ImageGenerationError as e:
            logger.warning(f"{name}: 图片生成失败，跳过: {e}")
            return False

        if target is not None:
            package.write(target, image)
            logger.info(f"{name}: 已替换图片 {target}")
            return True

        self.insert_image(package, image, anchor, caption, name)
        return True

    def find_generated_image(self, package: DocxPackage, name: str) -> Optional[str]:
        """按 docPr 名称查找之前插入的图表图片，返回其在包内的名称."""
        if not package.has(DOCUMENT_RELS_PART):
            return None
        document_xml = package.read_text(DOCUMENT_PART)
        doc_pr = re.search(rf'<wp:docPr\b[^>]*\bname="{re.escape(escape_xml(name))}"', document_xml)
        if doc_pr is None:
            return None
        embed = _EMBED_ID.search(document_xml, doc_pr.end())
        if embed is None:
            return None

        for rel in parse_relationships(package.read_text(DOCUMENT_RELS_PART)):
            if rel.get("Id") == embed.group(1):
                target = "word/" + rel.get("Target", "").lstrip("/")
                if target.startswith("word/word/"):
                    target = target[len("word/"):]
                return target if package.has(target) else None
        return None

    def find_replaceable_image(self, package: DocxPackage, anchor: Optional[int]) -> Optional[str]:
        """找出最适合替换的已有图片.

        排除文件名像徽标/页眉/页脚/签名的图片，以及位于文档开头信头区域的图片，
        在剩余图片中选择距离上下文短语最近的一个。

        Args:
            package: 文档包
            anchor: 上下文短语在 document.xml 中的位置，None 时只在唯一候选时返回

        Returns:
            图片在包内的名称，没有合适候选时返回None
        """
        if not package.has(DOCUMENT_RELS_PART):
            return None
        document_xml = package.read_text(DOCUMENT_PART)
        relationships = parse_relationships(package.read_text(DOCUMENT_RELS_PART))

        candidates = []
        for name in package.names():
            lower = name.lower()
            if not lower.startswith(MEDIA_PREFIX) or not lower.endswith(IMAGE_EXTENSIONS):
                continue
            base_name = lower[len(MEDIA_PREFIX):]
            if any(hint in base_name for hint in EXCLUDED_NAME_HINTS):
                logger.debug(f"跳过疑似徽标/页眉图片: {name}")
                continue

            target = name[len("word/"):]
            rel_ids = [
                rel.get("Id") for rel in relationships
                if rel.get("Target", "").lstrip("/") in (target, name)
            ]
            for rel_id in filter(None, rel_ids):
                usage = re.search(rf'r:(?:embed|id)="{re.escape(rel_id)}"', document_xml)
                if usage is None:
                    continue
                if usage.start() < self.header_zone_chars:
                    logger.debug(f"跳过位于信头区域的图片: {name}")
                    continue
                candidates.append((usage.start(), name))

        if not candidates:
            return None
        if anchor is None:
            return candidates[0][1] if len(candidates) == 1 else None
        return min(candidates, key=lambda item: abs(item[0] - anchor))[1]

    def insert_image(
        self,
        package: DocxPackage,
        image: bytes,
        anchor: int,
        caption: str,
        name: str = "Chart",
    ) -> str:
        """在包含上下文短语的段落之后插入新图片和说明段落.

        Returns:
            新图片在包内的名称
        """
        document_xml = package.read_text(DOCUMENT_PART)
        rels_xml = package.read_text(DOCUMENT_RELS_PART) if package.has(DOCUMENT_RELS_PART) else (
            '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>\n'
            '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships"></Relationships>'
        )

        media_name = next_media_name(package)
        rel_id = next_relationship_id(rels_xml)
        relationship = (
            f'<Relationship Id="{rel_id}" Type="{IMAGE_RELATIONSHIP_TYPE}" '
            f'Target="{media_name[len("word/"):]}"/>'
        )
        rels_xml = rels_xml.replace("</Relationships>", relationship + "</Relationships>", 1)

        doc_pr_id = max((int(n) for n in _DOC_PR_ID.findall(document_xml)), default=0) + 1
        fragment = DRAWING_TEMPLATE.format(
            cx=CHART_WIDTH_EMU,
            cy=CHART_HEIGHT_EMU,
            doc_pr_id=doc_pr_id,
            name=escape_xml(name),
            file_name=media_name.rsplit("/", 1)[-1],
            rel_id=rel_id,
            caption=escape_xml(caption),
        )

        paragraph_end = document_xml.find("</w:p>", anchor)
        if paragraph_end == -1:
            insert_at = document_xml.rfind("<w:sectPr")
            if insert_at == -1:
                insert_at = document_xml.rfind("</w:body>")
        else:
            insert_at = paragraph_end + len("</w:p>")
        document_xml = document_xml[:insert_at] + fragment + document_xml[insert_at:]

        package.write(media_name, image)
        package.write(DOCUMENT_RELS_PART, rels_xml)
        package.write(DOCUMENT_PART, document_xml)
        if package.has(CONTENT_TYPES_PART):
            package.write(CONTENT_TYPES_PART, ensure_png_content_type(package.read_text(CONTENT_TYPES_PART)))

        logger.info(f"{name}: 已插入新图片 {media_name}（{rel_id}）")
        return media_name
