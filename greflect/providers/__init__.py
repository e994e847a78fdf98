"""
外部能力提供者模块（providers 包）。

本模块是 greflect 与外部模型/搜索服务之间的桥梁层：
- base.py             : LLMProvider 抽象基类（chat + embed）和 LLMResponse 数据结构
- litellm_provider.py : 基于 LiteLLM 的实现，对接 OpenAI / xAI 等服务商
- brave.py            : Brave 网页搜索客户端
"""

from greflect.providers.base import LLMProvider, LLMResponse, ToolCallRequest
from greflect.providers.brave import BraveSearch, SearchResult
from greflect.providers.litellm_provider import LiteLLMProvider

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "ToolCallRequest",
    "LiteLLMProvider",
    "BraveSearch",
    "SearchResult",
]
