"""替换内容生成服务.

把待替换文本块分批交给大模型，要求模型通过函数调用逐一返回替换文本，
并保证每个输入文本块恰好对应一个替换结果。
"""

import time
from typing import Callable, Dict, List, Optional, TypeVar

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from docx_rewriter.config.settings import settings
from docx_rewriter.data.models import Replacement, TextRun
from docx_rewriter.errors import GenerationError, NoPlaceholdersError, RateLimitError, ResponseFormatError

T = TypeVar("T")

# 可重试的HTTP状态：限流、额度不足
RETRYABLE_STATUS = {429, 402}

EXHAUSTED_MESSAGES = {
    429: "Rate limited: The AI service is busy. Please try again in a few minutes.",
    402: "AI service credits exhausted. Please try again later.",
}


SYSTEM_PROMPT = """You are a professional document editor. Replace highlighted placeholder text in a client document based on the instructions provided.

RULES:
1. Generate ONLY the replacement text - no explanations, quotes or formatting markers.
2. Match the tone and style of the surrounding document.
3. Never change client, recipient, beneficiary or other third-party names.
4. Replace preparer, author, adviser or reviewer names with "{preparer_name}".
5. Never alter text that follows a letter-closing salutation (such as "Yours sincerely" or "Kind regards"); return such text exactly as given.
6. For numbers, dates, percentages and monetary amounts, produce plausible variations within realistic ranges, using the market context supplied.
7. Every replacement must differ from the original text (except under rule 5).
8. Keep a similar length unless more detail is clearly required."""

IDENTIFY_SYSTEM_PROMPT = """You are a professional document editor. The client document below has no highlighted placeholders, so you must decide which text runs need to be replaced according to the instructions.

Select runs that contain financial figures, percentages, dates, preparer/author names, or any text the instructions ask to update. Do not select headings, boilerplate or client names.

For every selected run:
- Replace preparer, author, adviser or reviewer names with "{preparer_name}".
- Produce plausible variations of numbers, dates and percentages within realistic ranges, using the market context supplied.
- The replacement must differ from the original text.
- Give a short reason for the selection."""

PROVIDE_REPLACEMENTS_TOOL = {
    "type": "function",
    "function": {
        "name": "provide_replacements",
        "description": "Provide replacement text for each highlighted section",
        "parameters": {
            "type": "object",
            "properties": {
                "replacements": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "section_number": {"type": "number", "description": "The section number (1-indexed)"},
                            "replacement_text": {"type": "string", "description": "The replacement text"},
                        },
                        "required": ["section_number", "replacement_text"],
                    },
                }
            },
            "required": ["replacements"],
        },
    },
}

IDENTIFY_REPLACEMENTS_TOOL = {
    "type": "function",
    "function": {
        "name": "identify_replacements",
        "description": "Select the text runs that must be replaced and provide their replacement text",
        "parameters": {
            "type": "object",
            "properties": {
                "replacements": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "run_number": {"type": "number", "description": "The run number (1-indexed)"},
                            "replacement_text": {"type": "string", "description": "The replacement text"},
                            "reason": {"type": "string", "description": "Why this run needs replacing"},
                        },
                        "required": ["run_number", "replacement_text"],
                    },
                }
            },
            "required": ["replacements"],
        },
    },
}


class SectionReplacement(BaseModel):
    """模型返回的单个段落替换."""

    section_number: int = Field(..., description="段落编号（从1开始）")
    replacement_text: str = Field(..., description="替换文本")


class SectionReplacementBatch(BaseModel):
    replacements: List[SectionReplacement] = Field(default_factory=list)


class RunReplacement(BaseModel):
    """自动识别模式下模型选中的文本块."""

    run_number: int = Field(..., description="文本块编号（从1开始）")
    replacement_text: str = Field(..., description="替换文本")
    reason: str = Field(default="", description="选择原因")


class RunReplacementBatch(BaseModel):
    replacements: List[RunReplacement] = Field(default_factory=list)


class ReplacementOrchestrator:
    """替换内容生成服务."""

    def __init__(
        self,
        llm_client=None,
        batch_size: Optional[int] = None,
        batch_delay: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        preparer_name: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """初始化替换内容生成服务.

        Args:
            llm_client: 大模型客户端，如果为None则自动创建
            batch_size: 每批段落数
            batch_delay: 批次之间的间隔（秒）
            max_retries: 限流时的最大尝试次数
            retry_base_delay: 指数退避的起始间隔（秒）
            preparer_name: 编写人统一替换的名称
            sleep: 等待函数，测试时可替换
        """
        if llm_client is None:
            from docx_rewriter.service.llm_client import LLMClient
            self.llm_client = LLMClient()
        else:
            self.llm_client = llm_client

        self.batch_size = batch_size or settings.llm.batch_size
        self.batch_delay = settings.llm.batch_delay if batch_delay is None else batch_delay
        self.max_retries = max_retries or settings.llm.max_retries
        self.retry_base_delay = settings.llm.retry_base_delay if retry_base_delay is None else retry_base_delay
        self.preparer_name = preparer_name or settings.llm.preparer_name
        self._sleep = sleep

    def generate_replacements(
        self,
        instruction_context: str,
        sections: List[TextRun],
        auxiliary_context: str = "",
    ) -> List[Replacement]:
        """为每个待替换段落生成替换文本.

        段落按批次顺序处理，批次之间等待固定间隔以避免触发限流。
        返回结果与输入一一对应、顺序一致；模型未返回的段落保留原文。

        Args:
            instruction_context: 指令文档的文本
            sections: 待替换的文本块
            auxiliary_context: 辅助上下文（日期、行情数据）

        Returns:
            替换结果列表，长度与 sections 相同

        Raises:
            RateLimitError: 限流/额度不足且重试用尽
            GenerationError: 其他生成失败
        """
        merged: Dict[int, str] = {}
        batch_count = (len(sections) + self.batch_size - 1) // self.batch_size
        logger.info(f"共 {len(sections)} 个段落，分 {batch_count} 批处理")

        for batch_number, offset in enumerate(range(0, len(sections), self.batch_size)):
            if batch_number > 0 and self.batch_delay > 0:
                self._sleep(self.batch_delay)
            batch = sections[offset:offset + self.batch_size]
            logger.info(f"处理第 {batch_number + 1}/{batch_count} 批，共 {len(batch)} 个段落")
            merged.update(self._generate_batch(instruction_context, batch, offset, auxiliary_context))

        missing = [i for i in range(len(sections)) if i not in merged]
        if missing:
            logger.warning(f"{len(missing)} 个段落没有返回替换文本，保留原文: {missing[:20]}")

        return [
            Replacement.from_run(section, merged.get(i, section.text))
            for i, section in enumerate(sections)
        ]

    def identify_and_replace(
        self,
        instruction_context: str,
        runs: List[TextRun],
        auxiliary_context: str = "",
    ) -> List[Replacement]:
        """没有高亮标记时，由模型在全部文本块中选择需要替换的内容.

        Args:
            instruction_context: 指令文档的文本
            runs: 文档中全部非空文本块
            auxiliary_context: 辅助上下文（日期、行情数据）

        Returns:
            模型选中的文本块的替换结果，按文档顺序排列

        Raises:
            NoPlaceholdersError: 文档没有文本，或模型没有选中任何文本块
        """
        if not runs:
            raise NoPlaceholdersError("No text found in the client data document")

        runs_text = "\n".join(f"[Run {i + 1}] {run.text}" for i, run in enumerate(runs))
        user_message = (
            f"INSTRUCTION PROMPT:\n{instruction_context}\n\n"
            f"MARKET CONTEXT:\n{auxiliary_context}\n\n"
            f"DOCUMENT RUNS ({len(runs)} total):\n{runs_text}\n\n"
            "Identify the runs that need replacing and provide their replacement text."
        )
        system_message = IDENTIFY_SYSTEM_PROMPT.format(preparer_name=self.preparer_name)

        arguments = self._call_with_retry(
            lambda: self.llm_client.function_call(
                user_message=user_message,
                system_message=system_message,
                tool=IDENTIFY_REPLACEMENTS_TOOL,
            )
        )
        try:
            parsed = RunReplacementBatch.model_validate(arguments)
        except ValidationError as e:
            raise ResponseFormatError(f"Invalid AI response format: {e}") from e

        selected: Dict[int, RunReplacement] = {}
        for item in parsed.replacements:
            index = item.run_number - 1
            if not 0 <= index < len(runs):
                logger.warning(f"模型返回的文本块编号超出范围，已忽略: {item.run_number}")
                continue
            if index in selected:
                logger.warning(f"模型重复返回文本块 {item.run_number}，保留第一次结果")
                continue
            selected[index] = item

        if not selected:
            raise NoPlaceholdersError("Could not identify any text to replace in the client data document")

        logger.info(f"自动识别模式：模型选中 {len(selected)} 个文本块")
        return [
            Replacement.from_run(runs[i], selected[i].replacement_text, reason=selected[i].reason)
            for i in sorted(selected)
        ]

    def _generate_batch(
        self,
        instruction_context: str,
        batch: List[TextRun],
        offset: int,
        auxiliary_context: str,
    ) -> Dict[int, str]:
        """处理单个批次，返回以全局下标（从0开始）为键的替换文本."""
        sections_text = "\n\n".join(
            f"[Section {i + 1}]\nContext: {section.context}\nHighlighted text to replace: \"{section.text}\""
            for i, section in enumerate(batch)
        )
        user_message = (
            f"INSTRUCTION PROMPT:\n{instruction_context}\n\n"
            f"MARKET CONTEXT:\n{auxiliary_context}\n\n"
            f"SECTIONS TO REPLACE ({len(batch)} sections):\n{sections_text}\n\n"
            f"Provide exactly one replacement for each section, numbered 1 to {len(batch)}."
        )
        system_message = SYSTEM_PROMPT.format(preparer_name=self.preparer_name)

        arguments = self._call_with_retry(
            lambda: self.llm_client.function_call(
                user_message=user_message,
                system_message=system_message,
                tool=PROVIDE_REPLACEMENTS_TOOL,
            )
        )
        try:
            parsed = SectionReplacementBatch.model_validate(arguments)
        except ValidationError as e:
            raise ResponseFormatError(f"Invalid AI response format: {e}") from e

        results: Dict[int, str] = {}
        for item in parsed.replacements:
            if not 1 <= item.section_number <= len(batch):
                logger.warning(f"模型返回的段落编号超出范围，已忽略: {item.section_number}")
                continue
            index = offset + item.section_number - 1
            if index in results:
                logger.warning(f"模型重复返回段落 {item.section_number}，保留第一次结果")
                continue
            results[index] = item.replacement_text

        logger.info(f"本批返回 {len(results)}/{len(batch)} 个替换")
        return results

    def _call_with_retry(self, call: Callable[[], T]) -> T:
        """按限流策略调用生成服务.

        429/402 按指数退避重试，最多尝试 max_retries 次；其他错误直接抛出。
        """
        last_error: Optional[GenerationError] = None
        for attempt in range(self.max_retries):
            try:
                return call()
            except ResponseFormatError:
                raise
            except GenerationError as e:
                if e.status_code not in RETRYABLE_STATUS:
                    raise
                last_error = e
                if attempt < self.max_retries - 1:
                    delay = self.retry_base_delay * (2 ** attempt)
                    logger.warning(f"生成服务返回 {e.status_code}，{delay:.0f} 秒后重试（第 {attempt + 1}/{self.max_retries} 次）")
                    self._sleep(delay)

        status = last_error.status_code if last_error else 429
        raise RateLimitError(EXHAUSTED_MESSAGES.get(status, EXHAUSTED_MESSAGES[429]), status_code=status) from last_error
