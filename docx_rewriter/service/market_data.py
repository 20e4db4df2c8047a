"""行情数据服务.

为生成提示词提供当前日期和主要指数点位，结果只拼接进提示词，不会被程序解析。
"""

import datetime
from typing import Dict, Optional

import httpx
from loguru import logger

from docx_rewriter.config.settings import settings

FALLBACK_GUIDANCE = (
    "Live market data is unavailable. Use realistic, current-looking values: "
    "annual returns for balanced portfolios typically between 4% and 9%, "
    "growth allocations between 50% and 85%, and cash rates between 3% and 5%."
)


class MarketDataProvider:
    """行情数据提供者."""

    def __init__(
        self,
        symbols: Optional[Dict[str, str]] = None,
        quote_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        """初始化行情数据提供者.

        Args:
            symbols: 指数名称到代码的映射
            quote_url: 行情接口地址模板，包含 {symbol}
            timeout: 请求超时（秒）
            client: httpx 客户端，测试时可注入
        """
        self.symbols = symbols if symbols is not None else settings.market.symbols
        self.quote_url = quote_url or settings.market.quote_url
        self.timeout = timeout or settings.market.timeout
        self._client = client

    def get_context(self, today: Optional[datetime.date] = None) -> str:
        """获取行情上下文文本，失败时返回兜底文本，不会抛出异常."""
        today = today or datetime.date.today()
        header = f"Current date: {today.strftime('%d %B %Y')}"

        try:
            lines = self._fetch_lines()
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning(f"获取行情数据失败，使用兜底文本: {e}")
            return f"{header}\n{FALLBACK_GUIDANCE}"

        if not lines:
            return f"{header}\n{FALLBACK_GUIDANCE}"
        logger.info(f"已获取 {len(lines)} 条行情数据")
        return "\n".join([header, "Market indices:"] + lines)

    def _fetch_lines(self) -> list:
        client = self._client or httpx.Client(timeout=self.timeout, headers={"User-Agent": "docx-rewriter/0.1"})
        try:
            lines = []
            for name, symbol in self.symbols.items():
                response = client.get(self.quote_url.format(symbol=symbol))
                response.raise_for_status()
                meta = response.json()["chart"]["result"][0]["meta"]
                price = float(meta["regularMarketPrice"])
                previous = float(meta.get("chartPreviousClose") or meta.get("previousClose") or price)
                change = (price - previous) / previous * 100 if previous else 0.0
                lines.append(f"- {name}: {price:,.2f} ({change:+.2f}%)")
            return lines
        finally:
            if self._client is None:
                client.close()
