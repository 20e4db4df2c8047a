"""Word文档替换应用."""

import datetime
import io
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

import typer
from loguru import logger

from docx_rewriter.config.settings import settings
from docx_rewriter.data.document_io import save_bytes
from docx_rewriter.data.models import FileChanges
from docx_rewriter.data.report_generator import ReportGenerator
from docx_rewriter.errors import NoPlaceholdersError
from docx_rewriter.service.chart_service import ChartRenderer
from docx_rewriter.service.filler import DocumentFillerService
from docx_rewriter.service.llm_client import LLMClient
from docx_rewriter.service.market_data import MarketDataProvider
from docx_rewriter.service.parser import DocumentParser
from docx_rewriter.service.replacement_service import ReplacementOrchestrator
from docx_rewriter.utils.logger import setup_logger

DOCX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
ZIP_CONTENT_TYPE = "application/zip"

# (文件名, 文件内容)
InputFile = Tuple[str, bytes]


@dataclass
class ProcessResult:
    """处理结果."""

    success: bool
    content: bytes = b""
    filename: str = ""
    content_type: str = ""
    changes: List[FileChanges] = field(default_factory=list)
    error_message: Optional[str] = None

    @property
    def content_disposition(self) -> str:
        return f'attachment; filename="{self.filename}"'

    @property
    def replacement_count(self) -> int:
        return sum(len(fc.changes) for fc in self.changes)

    @property
    def report(self) -> str:
        """生成结果报告.

        Returns:
            结果报告字符串
        """
        if not self.success:
            return f"Processing failed: {self.error_message}"

        return (
            f"Processing complete!\n"
            f"- Documents processed: {len(self.changes)}\n"
            f"- Replacements made: {self.replacement_count}\n"
            f"- Output file: {self.filename}"
        )


def output_file_name(name: str, today: datetime.date) -> str:
    """输出文档名：原文件名 + 日期."""
    return f"{Path(name).stem}_updated_{today.isoformat()}.docx"


class DocumentProcessor:
    """Word文档处理器.

    完整流水线：指令文本提取 → 客户文档扫描 → 生成替换 → 回写XML → 图表重绘 → 打包输出。
    """

    def __init__(
        self,
        llm_client=None,
        orchestrator=None,
        chart_renderer=None,
        market_data=None,
        enable_charts: Optional[bool] = None,
    ) -> None:
        """初始化Word文档处理器.

        Args:
            llm_client: 大模型客户端，替换生成和图表重绘共用
            orchestrator: 替换内容生成服务
            chart_renderer: 图表重绘服务
            market_data: 行情数据提供者
            enable_charts: 是否重绘图表，默认取配置
        """
        if llm_client is None and (orchestrator is None or chart_renderer is None):
            llm_client = LLMClient()

        self.parser = DocumentParser()
        self.orchestrator = orchestrator or ReplacementOrchestrator(llm_client)
        self.filler = DocumentFillerService(
            chart_renderer=chart_renderer or ChartRenderer(llm_client),
            enable_charts=enable_charts,
        )
        self.market_data = market_data or MarketDataProvider()
        self.report_generator = ReportGenerator()
        logger.info("文档处理器已初始化")

    def process(
        self,
        instruction: InputFile,
        clients: List[InputFile],
        today: Optional[datetime.date] = None,
    ) -> ProcessResult:
        """处理文档.

        任何错误都会转换为失败结果，不会返回部分输出。

        Args:
            instruction: 指令文档 (文件名, 内容)
            clients: 一个或多个客户文档 (文件名, 内容)
            today: 处理日期，用于输出文件名和行情上下文

        Returns:
            处理结果
        """
        today = today or datetime.date.today()
        try:
            if not clients:
                raise ValueError("Both instruction prompt and client data files are required")

            instruction_name, instruction_data = instruction
            instruction_text = self.parser.parse_instruction(instruction_data, instruction_name)
            auxiliary_context = self.market_data.get_context(today)

            outputs = []
            changes = []
            for name, data in clients:
                content, file_changes = self._process_client(name, data, instruction_text, auxiliary_context, today)
                outputs.append((output_file_name(name, today), content))
                changes.append(file_changes)

            if len(outputs) == 1:
                filename, content = outputs[0]
                result = ProcessResult(
                    success=True,
                    content=content,
                    filename=filename,
                    content_type=DOCX_CONTENT_TYPE,
                    changes=changes,
                )
            else:
                result = ProcessResult(
                    success=True,
                    content=self._bundle(outputs, changes),
                    filename=f"processed_documents_{today.isoformat()}.zip",
                    content_type=ZIP_CONTENT_TYPE,
                    changes=changes,
                )

            logger.info(f"文档处理完成，共 {result.replacement_count} 处替换")
            return result

        except Exception as e:
            logger.error(f"处理文档时发生错误: {e}")
            return ProcessResult(success=False, error_message=str(e))

    def process_files(self, instruction_path: str, client_paths: List[str]) -> ProcessResult:
        """从磁盘读取文件并处理."""
        try:
            instruction = (Path(instruction_path).name, Path(instruction_path).read_bytes())
            clients = [(Path(p).name, Path(p).read_bytes()) for p in client_paths]
        except OSError as e:
            logger.error(f"读取输入文件失败: {e}")
            return ProcessResult(success=False, error_message=f"Could not read input file: {e}")
        return self.process(instruction, clients)

    def _process_client(
        self,
        name: str,
        data: bytes,
        instruction_text: str,
        auxiliary_context: str,
        today: datetime.date,
    ) -> Tuple[bytes, FileChanges]:
        logger.info(f"开始处理文档: {name}")
        package, document_xml = self.parser.parse_client(data, name)

        sections, auto_detect = self.parser.find_sections(document_xml)
        if not sections:
            raise NoPlaceholdersError(f"No highlighted text found in the client data document ({name})")

        if auto_detect:
            replacements = self.orchestrator.identify_and_replace(instruction_text, sections, auxiliary_context)
        else:
            replacements = self.orchestrator.generate_replacements(instruction_text, sections, auxiliary_context)

        package = self.filler.fill_document(package, document_xml, replacements, today)
        content = package.verify()
        return content, FileChanges.from_replacements(name, replacements)

    def _bundle(self, outputs: List[InputFile], changes: List[FileChanges]) -> bytes:
        """多个文档打包为ZIP，附带变更记录."""
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for filename, content in outputs:
                archive.writestr(filename, content)
            archive.writestr(settings.document.changes_file_name, self.report_generator.build_change_log(changes))
        return buffer.getvalue()


# 命令行接口
app = typer.Typer()


@app.command()
def process_document(
    instruction_path: str = typer.Argument(..., help="指令Word文档路径"),
    client_paths: List[str] = typer.Argument(..., help="客户Word文档路径（可多个）"),
    output_dir: Optional[str] = typer.Option(None, help="输出目录，默认为配置中的output_dir"),
    charts: Optional[bool] = typer.Option(None, "--charts/--no-charts", help="是否重新生成图表"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出调试日志"),
) -> None:
    """用大模型替换Word文档中的高亮占位符."""
    if verbose:
        setup_logger("DEBUG")

    out_dir = Path(output_dir) if output_dir else settings.output_dir

    processor = DocumentProcessor(enable_charts=charts)
    result = processor.process_files(instruction_path, client_paths)

    if result.success:
        output_path = save_bytes(result.content, out_dir / result.filename)
        processor.report_generator.generate_report(result.changes, output_path.with_suffix(".md"))
        typer.echo(typer.style(result.report, fg=typer.colors.GREEN))
    else:
        typer.echo(typer.style(result.report, fg=typer.colors.RED))
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
