"""日志配置模块."""

import sys
from typing import Optional

from loguru import logger

from docx_rewriter.config.settings import settings


def setup_logger(level: Optional[str] = None, log_to_file: bool = True) -> None:
    """配置日志系统.

    可重复调用：每次都会替换已有的处理器，命令行用它调整日志级别。

    Args:
        level: 日志级别，默认取配置
        log_to_file: 是否同时写入输出目录下的日志文件
    """
    level = (level or settings.log.level).upper()
    logger.remove()

    logger.add(sys.stderr, format=settings.log.format, level=level, colorize=True)

    # 文件日志按大小轮转，保留一段时间
    if log_to_file and settings.log.log_file:
        logger.add(
            settings.output_dir / settings.log.log_file,
            format=settings.log.format,
            level=level,
            rotation=settings.log.rotation,
            retention=settings.log.retention,
            encoding="utf-8",
        )

    logger.debug(f"日志级别: {level}")
