"""上下文提取器."""

from collections import deque


class ContextExtractor:
    """上下文提取器.

    维护最近若干个非空文本块的滑动窗口，为每个文本块提供前文。
    """

    def __init__(self, context_window: int = 10, context_size: int = 5):
        """初始化上下文提取器.

        Args:
            context_window: 缓冲区保留的文本块数量
            context_size: 作为上下文返回的文本块数量
        """
        self.context_window = context_window
        self.context_size = context_size
        self._buffer = deque(maxlen=context_window)

    def current_context(self) -> str:
        """返回当前缓冲区末尾的上下文（不包含尚未压入的文本块）."""
        recent = list(self._buffer)[-self.context_size:] if self.context_size > 0 else []
        return " ".join(recent)

    def push(self, text: str) -> None:
        """压入一个文本块，空白文本忽略."""
        if text.strip():
            self._buffer.append(text)
