"""
对话工具子包 (agent/tools)

模块职责：
    定义 Questioner / Explorer 可调用的四种工具，以及管理它们的注册表：
      - Tool（基类）：统一接口（名称、描述、参数 schema、参数解析、执行）
      - ToolRegistry（注册表）：按名称查找与执行，返回 ToolOutcome

工具清单：
    - MemorySearchTool    : 语义检索记忆（两种角色）
    - ConceptLookupTool   : 查询哲学概念并存为语义记忆（两种角色）
    - MemorySynthesisTool : 综合记忆生成洞见（仅 Explorer）
    - WebSearchTool       : 网页搜索（仅 Explorer）
"""

from greflect.agent.tools.base import Tool, ToolKind
from greflect.agent.tools.concept import ConceptLookupTool
from greflect.agent.tools.memory import MemorySearchTool, MemorySynthesisTool, SynthesisResult
from greflect.agent.tools.registry import ToolOutcome, ToolRegistry
from greflect.agent.tools.web import WebSearchTool

__all__ = [
    "Tool",
    "ToolKind",
    "ToolRegistry",
    "ToolOutcome",
    "MemorySearchTool",
    "MemorySynthesisTool",
    "SynthesisResult",
    "ConceptLookupTool",
    "WebSearchTool",
]
