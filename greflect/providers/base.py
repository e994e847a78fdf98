"""
LLM 提供者基类定义模块。

本模块定义了与大语言模型交互的核心抽象接口，类似于 Java 中的 Interface + DTO 模式：
- ToolCallRequest : LLM 返回的工具调用请求（当 LLM 决定调用某个工具时的数据结构）
- LLMResponse     : LLM 的统一响应格式（包含文本内容、工具调用、token 用量等）
- LLMProvider     : 抽象基类，定义对话补全 chat() 与向量嵌入 embed() 两种能力

架构角色：
  DialogueOrchestrator → LLMProvider.chat()  → LLM API → LLMResponse
  MemoryManager        → LLMProvider.embed() → Embedding API → list[float]

类比 Java：
  - LLMProvider 相当于一个 interface
  - LLMResponse 相当于一个不可变的 DTO（Data Transfer Object）
  - ToolCallRequest 相当于一个 POJO，承载工具调用的参数信息
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ToolCallRequest:
    """
    LLM 返回的工具调用请求。

    属性：
        id: 工具调用的唯一标识符（由 LLM API 生成，用于将工具结果与请求关联）
        name: 要调用的工具名称（如 "memory_search"、"concept_lookup"）
        arguments: 工具调用的参数字典（如 {"query": "qualia", "limit": 5}）
    """
    id: str
    name: str
    arguments: dict[str, Any]


@dataclass
class LLMResponse:
    """
    LLM 的统一响应数据结构。

    属性：
        content: LLM 返回的文本内容（可能为 None，当 LLM 只返回工具调用时）
        tool_calls: LLM 请求调用的工具列表（可以同时调用多个工具）
        finish_reason: 结束原因（"stop"=正常结束, "tool_calls"=需要调用工具, "error"=出错）
        usage: token 用量统计（prompt_tokens, completion_tokens, total_tokens）
    """
    content: str | None
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    finish_reason: str = "stop"
    usage: dict[str, int] = field(default_factory=dict)

    @property
    def has_tool_calls(self) -> bool:
        """检查响应中是否包含工具调用请求。"""
        return len(self.tool_calls) > 0

    @property
    def is_error(self) -> bool:
        return self.finish_reason == "error"


class LLMProvider(ABC):
    """
    LLM 提供者抽象基类（类似 Java 的 interface）。

    所有实现类都必须实现：
    - chat()             : 发送对话请求并获取响应（出错时返回 finish_reason="error"，不抛异常）
    - embed()            : 生成文本向量（出错时返回空列表，不抛异常）
    - get_default_model(): 返回该提供者的默认模型名称

    属性：
        api_key: API 密钥
        api_base: API 基础 URL（用于自定义端点或代理）
    """

    def __init__(self, api_key: str | None = None, api_base: str | None = None):
        self.api_key = api_key
        self.api_base = api_base

    @abstractmethod
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

        参数：
            messages: 消息列表，每条消息是 {"role": "user/assistant/system/tool", "content": "..."} 格式
            tools: 可选的工具定义列表（OpenAI 函数调用格式）
            model: 模型标识符（如 'xai/grok-3-mini'）
            max_tokens: 响应的最大 token 数
            temperature: 采样温度
            tool_choice: 工具选择模式（"auto" / "none" / "required"）

        返回：
            LLMResponse，包含文本内容和/或工具调用请求
        """
        pass

    @abstractmethod
    async def embed(self, text: str, model: str | None = None) -> list[float]:
        """
        生成文本的向量嵌入。

        返回固定长度的浮点向量；失败或结果为空时返回 []，由调用方决定如何降级。
        """
        pass

    @abstractmethod
    def get_default_model(self) -> str:
        """获取该提供者的默认模型名称。"""
        pass
