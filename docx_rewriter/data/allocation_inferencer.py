"""衍生数据推断.

从最终的替换文本中推断资产配置比例（增长型/防御型）和业绩曲线，用于重新生成图表。
推断是尽力而为的：各策略按固定优先级依次尝试，越靠后越不可信，任一成功即返回。
"""

import datetime
import random
import re
from typing import Iterable, List, Optional, Tuple

from loguru import logger

from docx_rewriter.data.models import AllocationFacts, PerformancePoint, Replacement
from docx_rewriter.data.xml_text import decode_entities, extract_text_from_xml

_PERCENT = r"(\d{1,3}(?:\.\d+)?)\s?%"
_GROWTH_TERMS = r"(?:growth|equities|equity|stocks|shares)"
_DEFENSIVE_TERMS = r"(?:defensive|bonds|fixed\s+income)"

PERCENT_PATTERN = re.compile(_PERCENT)
DIRECT_GROWTH_PATTERN = re.compile(_PERCENT + r"\s*(?:(?:in|to|of)\s+)?" + _GROWTH_TERMS, re.IGNORECASE)
DIRECT_DEFENSIVE_PATTERN = re.compile(_PERCENT + r"\s*(?:(?:in|to|of)\s+)?" + _DEFENSIVE_TERMS, re.IGNORECASE)
GROWTH_KEYWORD_PATTERN = re.compile(r"\b(?:growth|equit(?:y|ies)|stocks?|shares)\b", re.IGNORECASE)
DEFENSIVE_KEYWORD_PATTERN = re.compile(r"\b(?:defensive|bonds?|fixed\s+income)\b", re.IGNORECASE)
DOCUMENT_GROWTH_PATTERN = re.compile(_PERCENT + r"\s+in\s+" + _GROWTH_TERMS, re.IGNORECASE)
DOCUMENT_DEFENSIVE_PATTERN = re.compile(_PERCENT + r"\s+in\s+" + _DEFENSIVE_TERMS, re.IGNORECASE)

MONEY_PATTERN = re.compile(r"\$\s?(\d[\d,]*(?:\.\d+)?)\s*(million|thousand|billion|[kmb])?\b", re.IGNORECASE)
_MULTIPLIERS = {"k": 1e3, "thousand": 1e3, "m": 1e6, "million": 1e6, "b": 1e9, "billion": 1e9}
# 只统计文本块或其前文提到业绩、市值或余额的金额
PERFORMANCE_HINT_PATTERN = re.compile(
    r"\b(?:performance|portfolio\s+value|balance|valued?|worth|returns?)\b", re.IGNORECASE
)

# 两个百分比之和与100的允许误差
PAIR_SUM_TOLERANCE = 2.0
VARIANCE_SEED = 42
VARIANCE_RATIO = 0.08


def _valid_share(value: float) -> bool:
    return 0 < value < 100


def _first_match(pattern: "re.Pattern", text: str) -> Optional[float]:
    for match in pattern.finditer(text):
        value = float(match.group(1))
        if _valid_share(value):
            return value
    return None


def _complement(value: float) -> float:
    # 先按展示精度取整，保证两侧之和恰好为100
    return round(100 - round(value, 1), 1)


def _nearest_distance(pattern: "re.Pattern", text: str, position: int) -> Optional[int]:
    distances = [min(abs(m.start() - position), abs(m.end() - position)) for m in pattern.finditer(text)]
    return min(distances) if distances else None


def _direct_match(texts: List[str]) -> Tuple[Optional[float], Optional[float]]:
    """策略1：直接匹配“61% equities”“39% bonds”这类短语."""
    growth = defensive = None
    for text in texts:
        if growth is None:
            growth = _first_match(DIRECT_GROWTH_PATTERN, text)
        if defensive is None:
            defensive = _first_match(DIRECT_DEFENSIVE_PATTERN, text)
    return growth, defensive


def _contextual_match(
    texts: List[str], growth: Optional[float], defensive: Optional[float]
) -> Tuple[Optional[float], Optional[float]]:
    """策略2：百分比与增长/防御关键词出现在同一段替换文本中，归属距离更近的关键词."""
    for text in texts:
        if growth is not None and defensive is not None:
            break
        for match in PERCENT_PATTERN.finditer(text):
            value = float(match.group(1))
            if not _valid_share(value):
                continue
            growth_distance = _nearest_distance(GROWTH_KEYWORD_PATTERN, text, match.start())
            defensive_distance = _nearest_distance(DEFENSIVE_KEYWORD_PATTERN, text, match.start())
            if growth_distance is None and defensive_distance is None:
                continue
            is_growth = defensive_distance is None or (
                growth_distance is not None and growth_distance <= defensive_distance
            )
            if is_growth and growth is None:
                growth = value
            elif not is_growth and defensive is None:
                defensive = value
    return growth, defensive


def _pair_sum(texts: List[str]) -> Tuple[Optional[float], Optional[float]]:
    """策略4：任意两个百分比之和接近100，较大者视为增长型（约定假设，未必正确）."""
    values = [float(m.group(1)) for text in texts for m in PERCENT_PATTERN.finditer(text)]
    values = [v for v in values if _valid_share(v)]
    for i in range(len(values)):
        for j in range(i + 1, len(values)):
            if abs(values[i] + values[j] - 100) <= PAIR_SUM_TOLERANCE:
                return max(values[i], values[j]), min(values[i], values[j])
    return None, None


def _build(growth: float, defensive: float, strategy: str) -> AllocationFacts:
    facts = AllocationFacts(
        growth_percent=round(growth, 1),
        defensive_percent=round(defensive, 1),
        strategy=strategy,
    )
    logger.info(f"推断出资产配置: 增长型 {facts.growth_percent}% / 防御型 {facts.defensive_percent}%（{strategy}）")
    return facts


def _with_complement(
    growth: Optional[float], defensive: Optional[float], strategy: str
) -> Optional[AllocationFacts]:
    """策略3：只知道一侧时，另一侧取 100 - 已知值."""
    if growth is not None and defensive is not None:
        return _build(growth, defensive, strategy)
    if growth is not None:
        return _build(growth, _complement(growth), "complement")
    if defensive is not None:
        return _build(_complement(defensive), defensive, "complement")
    return None


def infer_allocation(replacements: List[Replacement], document_xml: str = "") -> Optional[AllocationFacts]:
    """从替换文本推断资产配置比例.

    Args:
        replacements: 最终的替换结果
        document_xml: 原始 document.xml，用于最后的兜底匹配

    Returns:
        推断结果；所有策略都失败时返回None（跳过图表，不是错误）
    """
    texts = [r.new_text for r in replacements if r.new_text]

    growth, defensive = _direct_match(texts)
    if growth is not None and defensive is not None:
        return _build(growth, defensive, "direct")

    growth, defensive = _contextual_match(texts, growth, defensive)
    facts = _with_complement(growth, defensive, "contextual")
    if facts:
        return facts

    growth, defensive = _pair_sum(texts)
    if growth is not None:
        return _build(growth, defensive, "pair-sum")

    if document_xml:
        document_text = decode_entities(extract_text_from_xml(document_xml))
        growth = _first_match(DOCUMENT_GROWTH_PATTERN, document_text)
        defensive = _first_match(DOCUMENT_DEFENSIVE_PATTERN, document_text)
        facts = _with_complement(growth, defensive, "document")
        if facts:
            return facts

    logger.info("未能推断出资产配置比例，跳过图表重绘")
    return None


def parse_money(text: str) -> List[float]:
    """提取文本中的金额，支持千分位和 k/m/million 等后缀."""
    values = []
    for match in MONEY_PATTERN.finditer(text):
        try:
            amount = float(match.group(1).replace(",", ""))
        except ValueError:
            continue
        suffix = (match.group(2) or "").lower()
        values.append(amount * _MULTIPLIERS.get(suffix, 1))
    return values


def quarter_labels(as_of: datetime.date, count: int) -> List[str]:
    """生成截止到 as_of 所在季度的季度标签，按时间先后排列."""
    quarter = (as_of.month - 1) // 3 + 1
    year = as_of.year
    labels = []
    for _ in range(count):
        labels.append(f"Q{quarter} {year}")
        quarter -= 1
        if quarter == 0:
            quarter, year = 4, year - 1
    return list(reversed(labels))


def infer_performance_series(
    replacements: Iterable[Replacement],
    as_of: Optional[datetime.date] = None,
    points: int = 8,
) -> Optional[List[PerformancePoint]]:
    """从替换文本中的金额重建近似的业绩曲线.

    只使用文本或前文提到业绩、市值、余额的替换中的金额；
    首个和最后一个金额作为起止点，中间点线性插值后叠加固定种子的波动，
    只是示意数据，并非真实测量值。

    Args:
        replacements: 最终的替换结果
        as_of: 曲线截止日期，默认今天
        points: 曲线点数（至少2）

    Returns:
        曲线点列表；金额少于两个时返回None
    """
    amounts = [
        value
        for r in replacements
        if PERFORMANCE_HINT_PATTERN.search(r.new_text) or PERFORMANCE_HINT_PATTERN.search(r.context)
        for value in parse_money(r.new_text)
    ]
    if len(amounts) < 2 or points < 2:
        return None

    start, end = amounts[0], amounts[-1]
    labels = quarter_labels(as_of or datetime.date.today(), points)
    rng = random.Random(VARIANCE_SEED)
    spread = abs(end - start) or abs(start) * 0.25

    series = []
    for i, label in enumerate(labels):
        base = start + (end - start) * i / (points - 1)
        if 0 < i < points - 1:
            base += rng.uniform(-1, 1) * spread * VARIANCE_RATIO
        series.append(PerformancePoint(label=label, value=round(base, 2)))

    logger.info(f"重建业绩曲线: {len(series)} 个点，{start:,.2f} → {end:,.2f}")
    return series
