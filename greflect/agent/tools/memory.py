"""
记忆工具：memory_search 与 memory_synthesis。

两个工具都需要当前回合的工作记忆（用于重排与综合），
由 Orchestrator 在执行工具前通过 set_context() 注入。
"""

from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from greflect.agent.tools.base import Tool
from greflect.agent.types import Insight, Memory, MemoryType, WorkingMemory
from greflect.memory.manager import MemoryManager

# LLM 可使用的检索目标 → 实际记忆类型
SEARCH_TARGETS: dict[str, MemoryType] = {
    "episodic": "episodic",
    "experiences": "episodic",
    "insights": "episodic",
    "reflections": "episodic",
    "questions": "episodic",
    "semantic": "semantic",
    "concepts": "semantic",
    "definitions": "semantic",
    "procedural": "procedural",
    "patterns": "procedural",
    "strategies": "procedural",
}


@dataclass
class MemorySearchParams:
    query: str
    types: list[MemoryType] | None = None
    limit: int = 5


@dataclass
class MemorySynthesisParams:
    memories: list[str]


@dataclass
class SynthesisResult:
    """memory_synthesis 的结果：说明文本 + 综合出的洞见。"""
    synthesis: str
    insights: list[Insight] = field(default_factory=list)
    memory_ids: list[str] = field(default_factory=list)


class _ContextualTool(Tool):
    """需要当前工作记忆的工具基类。"""

    def __init__(self, manager: MemoryManager):
        self.manager = manager
        self._context = WorkingMemory()

    def set_context(self, context: WorkingMemory) -> None:
        self._context = context


class MemorySearchTool(_ContextualTool):
    """在情景/语义/程序记忆中做语义检索。"""

    name = "memory_search"
    description = "Search through previous insights, experiences, and learned concepts"
    parameters = {
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "Query for memory search", "minLength": 1},
            "types": {
                "type": "array",
                "items": {"type": "string", "enum": list(SEARCH_TARGETS)},
                "description": "Memory types to search",
            },
            "limit": {"type": "number", "description": "Max number of results", "minimum": 1, "maximum": 20},
        },
        "required": ["query"],
    }

    def parse_params(self, params: dict[str, Any]) -> MemorySearchParams:
        targets = params.get("types") or []
        types = list(dict.fromkeys(SEARCH_TARGETS[t] for t in targets)) or None
        return MemorySearchParams(
            query=params["query"],
            types=types,
            limit=int(params.get("limit") or 5),
        )

    async def execute(self, params: MemorySearchParams) -> list[Memory]:
        return await self.manager.retrieve_relevant_memories(
            params.query, self._context, params.types, params.limit
        )


class MemorySynthesisTool(_ContextualTool):
    """把若干条记忆交给模型综合，生成新的洞见。"""

    name = "memory_synthesis"
    description = "Synthesize memories to identify patterns and generate new insights"
    parameters = {
        "type": "object",
        "properties": {
            "memories": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Array of memory IDs to synthesize",
            },
        },
        "required": ["memories"],
    }

    def parse_params(self, params: dict[str, Any]) -> MemorySynthesisParams:
        return MemorySynthesisParams(memories=[m for m in params["memories"] if m])

    async def execute(self, params: MemorySynthesisParams) -> SynthesisResult:
        if not params.memories:
            logger.warning("memory_synthesis called without memory ids")
            return SynthesisResult(synthesis="No memories provided for synthesis")

        memories = await self.manager.get_memories(params.memories)
        if not memories:
            logger.warning(f"memory_synthesis: none of {len(params.memories)} memory ids were found")
            return SynthesisResult(synthesis="No valid memories found for synthesis")

        insights = await self.manager.synthesize_memories(memories, self._context)
        return SynthesisResult(
            synthesis=f"Synthesized {len(memories)} memories into {len(insights)} insights",
            insights=insights,
            memory_ids=[m.id for m in memories],
        )
