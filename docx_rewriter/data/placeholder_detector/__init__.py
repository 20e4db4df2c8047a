"""占位符检测器包."""

from docx_rewriter.data.placeholder_detector.base_detector import PlaceholderDetector
from docx_rewriter.data.placeholder_detector.highlight_detector import HighlightDetector
from docx_rewriter.data.placeholder_detector.run_detector import RunDetector

__all__ = [
    'PlaceholderDetector',
    'HighlightDetector',
    'RunDetector',
]
