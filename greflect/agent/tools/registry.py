"""
工具注册表模块 (agent/tools/registry.py)

模块职责：
    管理四种对话工具（memory_search / memory_synthesis / concept_lookup / web_search），
    按角色提供工具定义，并以"永不抛异常"的方式执行工具调用。

在架构中的位置：
    DialogueOrchestrator 持有一个 ToolRegistry：
    1. 构建 LLM 请求时，调用 get_definitions(角色可用工具) 获取 JSON Schema
    2. LLM 返回 tool_calls 时，逐个调用 execute(name, params)，得到 ToolOutcome
    3. ToolOutcome.to_dict() 写入交换记录的 tool_details，供审计与原始日志使用
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, get_args

from loguru import logger

from greflect.agent.tools.base import Tool, ToolKind
from greflect.utils.helpers import to_jsonable, utcnow

TOOL_KINDS: tuple[str, ...] = get_args(ToolKind)


@dataclass
class ToolOutcome:
    """
    一次工具调用的结果记录。

    result 与 error 二选一：成功时 error 为 None。
    """
    tool: str
    arguments: dict[str, Any]
    result: Any = None
    error: str | None = None
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "tool": self.tool,
            "arguments": to_jsonable(self.arguments),
            "timestamp": self.timestamp.isoformat(),
        }
        if self.ok:
            data["result"] = to_jsonable(self.result)
        else:
            data["error"] = self.error
        return data


class ToolRegistry:
    """
    对话工具注册表。

    内部使用 dict[ToolKind, Tool] 存储；只接受 ToolKind 中列出的工具名。
    """

    def __init__(self):
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        """注册一个工具（同名覆盖）。"""
        if tool.name not in TOOL_KINDS:
            raise ValueError(f"Unknown tool kind: {tool.name!r}")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def get_definitions(self, names: list[str] | None = None) -> list[dict[str, Any]]:
        """
        获取工具的 OpenAI Function Calling 定义。

        参数:
            names: 只返回这些工具（按给定顺序，未注册的跳过）；None 表示全部
        """
        selected = names if names is not None else list(self._tools)
        return [self._tools[n].to_schema() for n in selected if n in self._tools]

    async def execute(self, name: str, params: dict[str, Any]) -> ToolOutcome:
        """
        按名称执行工具。

        未知工具、参数不合法、工具内部异常都会被转换为带 error 的 ToolOutcome，
        保证一次工具失败不会中断整个对话回合。
        """
        params = params if isinstance(params, dict) else {}
        tool = self._tools.get(name)
        if not tool:
            logger.warning(f"Tool '{name}' not found")
            return ToolOutcome(tool=name, arguments=params, error=f"Tool '{name}' not found")

        errors = tool.validate_params(params)
        if errors:
            message = f"Invalid parameters for tool '{name}': " + "; ".join(errors)
            logger.warning(message)
            return ToolOutcome(tool=name, arguments=params, error=message)

        try:
            result = await tool.execute(tool.parse_params(params))
        except Exception as e:
            logger.error(f"Error executing tool {name}: {e}")
            return ToolOutcome(tool=name, arguments=params, error=str(e))
        return ToolOutcome(tool=name, arguments=params, result=result)
