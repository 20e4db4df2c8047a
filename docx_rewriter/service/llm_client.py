"""大模型客户端服务."""

import base64
import binascii
import json
import re
from typing import Any, Dict, Optional

import openai
from loguru import logger
from openai import OpenAI

from docx_rewriter.config.settings import settings
from docx_rewriter.errors import GenerationError, ImageGenerationError, ResponseFormatError

DATA_URI_PATTERN = re.compile(r"^data:image/([a-zA-Z0-9.+-]+);base64,(.+)$", re.DOTALL)


class LLMClient:
    """大模型客户端.

    负责与大模型API的基础通信，不包含特定业务逻辑。
    重试由调用方按业务策略处理，SDK自身不重试。
    """

    def __init__(self, client: Optional[OpenAI] = None) -> None:
        """初始化大模型客户端.

        Args:
            client: 已创建的OpenAI客户端，为None时按配置创建
        """
        if client is None:
            if not settings.llm.api_key:
                logger.warning("未设置API密钥，请在环境变量或配置中设置LLM_API_KEY或OPENAI_API_KEY")
            client_kwargs = {"api_key": settings.llm.api_key, "max_retries": 0}
            if settings.llm.api_base_url:
                client_kwargs["base_url"] = settings.llm.api_base_url
            client = OpenAI(**client_kwargs)
        self.client = client

        # 模型设置
        self.model_name = settings.llm.model_name
        self.image_model_name = settings.llm.image_model_name
        self.temperature = settings.llm.temperature
        self.timeout = settings.llm.timeout

        logger.info(f"大模型客户端已初始化，使用模型: {self.model_name}, API基础URL: {settings.llm.api_base_url}")

    def function_call(
        self,
        user_message: str,
        system_message: str,
        tool: Dict[str, Any],
        temperature: Optional[float] = None,
        timeout: Optional[int] = None,
    ) -> Dict[str, Any]:
        """强制模型通过指定函数返回结构化数据.

        Args:
            user_message: 用户消息
            system_message: 系统消息
            tool: 函数定义（OpenAI tools 格式）
            temperature: 温度参数
            timeout: 超时时间(秒)

        Returns:
            函数调用参数解析后的字典

        Raises:
            GenerationError: 接口返回非成功状态，status_code 为HTTP状态码
            ResponseFormatError: 响应中没有预期的函数调用
        """
        function_name = tool["function"]["name"]
        logger.debug(f"发送函数调用请求到LLM({function_name}): {user_message[:200]}...")
        try:
            response = self.client.chat.completions.create(
                model=self.model_name,
                messages=[
                    {"role": "system", "content": system_message},
                    {"role": "user", "content": user_message},
                ],
                tools=[tool],
                tool_choice={"type": "function", "function": {"name": function_name}},
                temperature=self.temperature if temperature is None else temperature,
                timeout=timeout or self.timeout,
            )
        except openai.APIStatusError as e:
            logger.error(f"大模型请求失败: {e.status_code} {e.message}")
            raise GenerationError(f"AI API error: {e.status_code} - {e.message}", status_code=e.status_code) from e
        except openai.APIConnectionError as e:
            logger.error(f"大模型连接失败: {e}")
            raise GenerationError(f"AI API connection failed: {e}") from e

        if not response.choices:
            raise ResponseFormatError("Invalid AI response format: no choices returned")

        tool_calls = response.choices[0].message.tool_calls or []
        if not tool_calls or not tool_calls[0].function.arguments:
            logger.warning("大模型未返回函数调用")
            raise ResponseFormatError("Invalid AI response format: expected a structured function call")

        arguments = tool_calls[0].function.arguments
        logger.info(f"大模型返回: {arguments[:200]}...")
        try:
            result = json.loads(arguments)
        except json.JSONDecodeError as e:
            raise ResponseFormatError(f"Invalid AI response format: {e}") from e
        if not isinstance(result, dict):
            raise ResponseFormatError("Invalid AI response format: function arguments must be an object")
        return result

    def generate_image(self, prompt: str, timeout: Optional[int] = None) -> bytes:
        """生成图片.

        Args:
            prompt: 图片描述
            timeout: 超时时间(秒)

        Returns:
            图片原始字节

        Raises:
            ImageGenerationError: 请求失败或响应中没有有效图片
        """
        logger.debug(f"发送图片生成请求: {prompt[:200]}...")
        try:
            response = self.client.chat.completions.create(
                model=self.image_model_name,
                messages=[{"role": "user", "content": prompt}],
                extra_body={"modalities": ["image", "text"]},
                timeout=timeout or self.timeout,
            )
        except openai.OpenAIError as e:
            raise ImageGenerationError(f"Image generation request failed: {e}") from e

        if not response.choices:
            raise ImageGenerationError("Image generation returned no choices")

        message = response.choices[0].message.model_dump()
        images = message.get("images") or []
        if not images:
            raise ImageGenerationError("Image generation response contained no image")

        url = (images[0].get("image_url") or {}).get("url", "")
        return decode_data_uri(url)


def decode_data_uri(url: str) -> bytes:
    """解码 base64 data URI.

    Raises:
        ImageGenerationError: 格式不正确
    """
    match = DATA_URI_PATTERN.match(url.strip()) if url else None
    if not match:
        raise ImageGenerationError("Malformed image data URI")
    try:
        return base64.b64decode("".join(match.group(2).split()), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageGenerationError(f"Malformed image data URI: {e}") from e
