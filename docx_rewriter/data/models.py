"""数据模型定义."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple


@dataclass(frozen=True)
class TextRun:
    """文档中的一个文本块（w:r）.

    Attributes:
        index: 在全部文本块中的顺序位置
        text: 文本内容（已解码XML实体）
        context: 该文本块之前最多5个非空文本块，用空格连接
        raw_markup: 原始XML片段，回写时用于精确定位
        is_highlighted: 是否带有高亮/底纹格式
        start: 原始XML片段在文档XML中的起始偏移
    """

    index: int
    text: str
    context: str
    raw_markup: str
    is_highlighted: bool = False
    start: int = -1


@dataclass
class Replacement:
    """一个文本块的替换结果."""

    original_text: str
    new_text: str
    raw_markup: str
    run_index: int = -1
    start: int = -1
    reason: str = ""
    context: str = ""

    @property
    def changed(self) -> bool:
        return self.new_text != self.original_text

    @classmethod
    def from_run(cls, run: TextRun, new_text: str, reason: str = "") -> "Replacement":
        return cls(
            original_text=run.text,
            new_text=new_text,
            raw_markup=run.raw_markup,
            run_index=run.index,
            start=run.start,
            reason=reason,
            context=run.context,
        )


@dataclass
class AllocationFacts:
    """推断出的资产配置比例（增长型/防御型）."""

    growth_percent: float
    defensive_percent: float
    labels: Tuple[str, str] = ("Growth assets", "Defensive assets")
    strategy: str = ""


@dataclass
class PerformancePoint:
    """业绩曲线上的一个点."""

    label: str
    value: float


class PackageFile:
    """ZIP包内的一个条目."""

    def __init__(self, name: str, data: bytes = b"", is_dir: bool = False) -> None:
        """初始化包条目.

        Args:
            name: 条目名称（包内路径）
            data: 条目内容
            is_dir: 是否为目录条目
        """
        self.name = name
        self.data = data
        self.is_dir = is_dir

    def __repr__(self) -> str:
        return f"PackageFile(name='{self.name}', size={len(self.data)}, is_dir={self.is_dir})"


@dataclass
class TextChange:
    """变更记录中的一条替换."""

    original_text: str
    new_text: str

    def to_dict(self) -> Dict[str, str]:
        return {"originalText": self.original_text, "newText": self.new_text}


@dataclass
class FileChanges:
    """单个文档的变更记录."""

    file_name: str
    changes: List[TextChange] = field(default_factory=list)

    @classmethod
    def from_replacements(cls, file_name: str, replacements: List[Replacement]) -> "FileChanges":
        return cls(
            file_name=file_name,
            changes=[TextChange(r.original_text, r.new_text) for r in replacements],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fileName": self.file_name,
            "changes": [change.to_dict() for change in self.changes],
        }
