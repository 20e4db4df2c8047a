"""报告生成器."""

import json
from pathlib import Path
from typing import List, Union

from loguru import logger

from docx_rewriter.data.models import FileChanges


class ReportGenerator:
    """报告生成器."""

    def build_change_log(self, files_changes: List[FileChanges]) -> str:
        """生成变更记录JSON，格式为 [{fileName, changes: [{originalText, newText}]}]."""
        return json.dumps([fc.to_dict() for fc in files_changes], ensure_ascii=False, indent=2)

    def generate_report(self, files_changes: List[FileChanges], output_path: Union[str, Path]) -> None:
        """生成Markdown处理报告.

        Args:
            files_changes: 每个文档的变更记录
            output_path: 输出文件路径
        """
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            with open(output_path, "w", encoding="utf-8") as f:
                f.write("# Document Changes\n\n")
                for fc in files_changes:
                    f.write(f"## {fc.file_name}\n\n")
                    if not fc.changes:
                        f.write("No changes were made to this file.\n\n")
                        continue
                    f.write(f"{len(fc.changes)} change(s)\n\n")
                    for i, change in enumerate(fc.changes, 1):
                        f.write(f"{i}. ~~{change.original_text}~~ → **{change.new_text}**\n")
                    f.write("\n")

            logger.info(f"已生成处理报告: {output_path}")
        except OSError as e:
            logger.error(f"生成处理报告失败: {e}")
            raise ValueError(f"生成处理报告失败: {e}")
