"""项目配置设置."""

from dotenv import load_dotenv
import os
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, Field

# 先加载.env.example（最低优先级），再加载.env（覆盖前者），最后环境变量最高
load_dotenv(dotenv_path=Path(__file__).parent.parent.parent / '.env.example', override=False)
load_dotenv(dotenv_path=Path(__file__).parent.parent.parent / '.env', override=True)


class LLMConfig(BaseModel):
    """大模型配置."""

    model_name: str = Field(default_factory=lambda: os.environ.get("LLM_MODEL_NAME", "google/gemini-2.5-flash"))  # 文本生成模型
    image_model_name: str = Field(default_factory=lambda: os.environ.get("IMAGE_MODEL_NAME", "google/gemini-2.5-flash-image-preview"))  # 图表生成模型
    api_key: Optional[str] = Field(default_factory=lambda: os.environ.get("LLM_API_KEY") or os.environ.get("OPENAI_API_KEY"))  # API密钥
    api_base_url: Optional[str] = Field(default_factory=lambda: os.environ.get("LLM_API_BASE"))  # API基础URL（OpenAI兼容网关）
    temperature: float = Field(default_factory=lambda: float(os.environ.get("TEMPERATURE", "0.7")))  # 生成多样性（温度）
    timeout: int = Field(default_factory=lambda: int(os.environ.get("TIMEOUT", "120")))  # API请求超时时间（秒）

    # 批处理与重试
    batch_size: int = Field(default_factory=lambda: int(os.environ.get("BATCH_SIZE", "50")))  # 每批段落数
    batch_delay: float = Field(default_factory=lambda: float(os.environ.get("BATCH_DELAY", "1.0")))  # 批次间隔（秒）
    max_retries: int = Field(default_factory=lambda: int(os.environ.get("MAX_RETRIES", "5")))  # 最大尝试次数
    retry_base_delay: float = Field(default_factory=lambda: float(os.environ.get("RETRY_BASE_DELAY", "2.0")))  # 指数退避起始间隔（秒）

    # 编写人统一替换为该名称
    preparer_name: str = Field(default_factory=lambda: os.environ.get("PREPARER_NAME", "Romit Acharya"))


class DocumentConfig(BaseModel):
    """文档处理配置."""

    context_window: int = Field(default_factory=lambda: int(os.environ.get("CONTEXT_WINDOW", "10")))  # 上下文缓冲的run数量
    context_size: int = Field(default_factory=lambda: int(os.environ.get("CONTEXT_SIZE", "5")))  # 作为上下文记录的run数量
    header_zone_chars: int = Field(default_factory=lambda: int(os.environ.get("HEADER_ZONE_CHARS", "5000")))  # 文档开头视为信头区域的字符数
    charts_enabled: bool = Field(default_factory=lambda: os.environ.get("CHARTS_ENABLED", "true").lower() in ("1", "true", "yes"))  # 是否重新生成图表
    changes_file_name: str = Field(default_factory=lambda: os.environ.get("CHANGES_FILE_NAME", "_changes.json"))  # 多文件输出时的变更记录文件名


def _parse_symbols(raw: str) -> Dict[str, str]:
    symbols = {}
    for item in raw.split(","):
        if "=" not in item:
            continue
        name, ticker = item.split("=", 1)
        symbols[name.strip()] = ticker.strip()
    return symbols


class MarketConfig(BaseModel):
    """行情数据配置."""

    quote_url: str = Field(default_factory=lambda: os.environ.get("MARKET_QUOTE_URL", "https://query1.finance.yahoo.com/v8/finance/chart/{symbol}"))
    symbols: Dict[str, str] = Field(default_factory=lambda: _parse_symbols(os.environ.get(
        "MARKET_SYMBOLS", "ASX 200=^AXJO,S&P 500=^GSPC,MSCI World=URTH"
    )))
    timeout: float = Field(default_factory=lambda: float(os.environ.get("MARKET_TIMEOUT", "10")))


class LogConfig(BaseModel):
    """日志配置."""

    level: str = Field(default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO"))  # 日志级别
    # 精简日志格式
    format: str = Field(default_factory=lambda: os.environ.get("LOG_FORMAT", "<level>{level: <8}</level>| - <level>{message}</level>"))
    log_file: Optional[str] = Field(default_factory=lambda: os.environ.get("LOG_FILE", "docx_rewriter.log"))  # 日志文件名
    rotation: str = Field(default_factory=lambda: os.environ.get("LOG_ROTATION", "10 MB"))  # 日志轮转大小
    retention: str = Field(default_factory=lambda: os.environ.get("LOG_RETENTION", "1 week"))  # 日志保留时间


class Settings(BaseModel):
    """项目全局设置."""

    llm: LLMConfig = Field(default_factory=LLMConfig)  # 大模型相关配置
    document: DocumentConfig = Field(default_factory=DocumentConfig)  # 文档处理相关配置
    market: MarketConfig = Field(default_factory=MarketConfig)  # 行情数据配置
    log: LogConfig = Field(default_factory=LogConfig)  # 日志相关配置

    # 项目路径配置
    project_dir: Path = Field(default_factory=lambda: Path(__file__).parent.parent.parent)  # 项目根目录
    output_dir: Path = Field(default_factory=lambda: Path(os.environ.get("OUTPUT_DIR", str(Path(__file__).parent.parent.parent / "output"))))  # 输出目录


# 单例模式，避免多次实例化
_settings = None
def get_settings():
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings

settings = get_settings()

# 确保输出目录存在
settings.output_dir.mkdir(exist_ok=True, parents=True)
