"""
LiteLLM 提供者实现模块：多 LLM 服务商的统一调用层。

对话双方共用的 LLMProvider 实现，借助 LiteLLM 把聊天与向量嵌入
两类调用收敛到同一个类里。

  类比 Java 世界：LiteLLM 类似于 JDBC，一套接口，多种数据库驱动。

greflect 中的用法：
  - 提问者（Questioner）与探索者（Explorer）各持有一个实例，分别指向不同服务商
    （默认 OpenAI gpt-5-nano 与 xAI grok-3-mini，模型名前缀 "xai/" 由 LiteLLM 路由）
  - 记忆管理器通过 embed() 调用 LiteLLM 的 aembedding 生成 1536 维向量

错误容错：
  chat() 失败时返回 finish_reason="error" 的 LLMResponse 而非抛出异常；
  embed() 失败时返回空列表。是否升级为步骤错误由调用方决定。
"""

import json
from typing import Any

import litellm
from litellm import acompletion, aembedding
from loguru import logger

from greflect.providers.base import LLMProvider, LLMResponse, ToolCallRequest


class LiteLLMProvider(LLMProvider):
    """
    基于 LiteLLM 的 LLM 提供者实现类。

    构造参数：
        api_key: API 密钥（直接随请求传入，不写入环境变量）
        api_base: 自定义 API 基础 URL（用于代理/网关/本地部署）
        default_model: 默认模型名称（如 "gpt-5-nano"）
        extra_headers: 额外的 HTTP 请求头
        embedding_model: 默认嵌入模型（如 "text-embedding-3-small"）
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        default_model: str = "gpt-5-nano",
        extra_headers: dict[str, str] | None = None,
        embedding_model: str = "text-embedding-3-small",
    ):
        super().__init__(api_key, api_base)
        self.default_model = default_model
        self.extra_headers = extra_headers or {}
        self.embedding_model = embedding_model

        # 关闭 LiteLLM 自带的调试输出
        litellm.suppress_debug_info = True
        # 服务商不认识的参数直接丢弃
        litellm.drop_params = True

    def _auth_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {}
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.extra_headers:
            kwargs["extra_headers"] = self.extra_headers
        return kwargs

    async def chat(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        tool_choice: str = "auto",
    ) -> LLMResponse:
        """
        发送对话补全请求。

        Agent 的每一回合都会调用此方法（工具结果回填时还会再调用一次）。

        返回：
            LLMResponse：统一的响应格式，包含文本内容和/或工具调用请求
        """
        kwargs: dict[str, Any] = {
            "model": model or self.default_model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
            **self._auth_kwargs(),
        }

        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = tool_choice

        try:
            response = await acompletion(**kwargs)
            return self._parse_response(response)
        except Exception as e:
            # 出错时返回错误信息而非抛出异常，由 Orchestrator 决定是否算作步骤失败
            return LLMResponse(
                content=f"Error calling LLM: {str(e)}",
                finish_reason="error",
            )

    def _parse_response(self, response: Any) -> LLMResponse:
        """
        将 LiteLLM 的原始响应解析为统一的 LLMResponse 格式。

        LiteLLM 的响应格式遵循 OpenAI 规范：
        response.choices[0].message 中包含 content / tool_calls。
        """
        choice = response.choices[0]
        message = choice.message

        tool_calls = []
        if hasattr(message, "tool_calls") and message.tool_calls:
            for tc in message.tool_calls:
                # 工具参数可能是 JSON 字符串，需要解析为字典
                args = tc.function.arguments
                if isinstance(args, str):
                    try:
                        args = json.loads(args) if args.strip() else {}
                    except json.JSONDecodeError:
                        args = {"raw": args}

                tool_calls.append(ToolCallRequest(
                    id=tc.id,
                    name=tc.function.name,
                    arguments=args if isinstance(args, dict) else {"raw": args},
                ))

        usage = {}
        if hasattr(response, "usage") and response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        return LLMResponse(
            content=message.content,
            tool_calls=tool_calls,
            finish_reason=choice.finish_reason or "stop",
            usage=usage,
        )

    async def embed(self, text: str, model: str | None = None) -> list[float]:
        """
        生成文本向量。

        失败或返回空向量时记录日志并返回 []。
        """
        try:
            response = await aembedding(
                model=model or self.embedding_model,
                input=[text],
                **self._auth_kwargs(),
            )
        except Exception as e:
            logger.error(f"Embedding request failed: {e}")
            return []

        data = getattr(response, "data", None) or []
        if not data:
            logger.warning("Embedding response contained no data")
            return []
        first = data[0]
        vector = first.get("embedding") if isinstance(first, dict) else getattr(first, "embedding", None)
        return list(vector or [])

    def get_default_model(self) -> str:
        """获取默认模型名称。"""
        return self.default_model
