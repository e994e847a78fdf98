"""
对话与记忆数据模型定义。

本模块定义了整个 greflect 系统流转的核心数据结构：
- DialogueState    : 单次运行唯一的对话状态（当前 Agent、阶段、深度、工作记忆、问题线索、洞见日志）
- WorkingMemory    : 工作记忆（最近 10 条对话交换 + 当前话题 + 关注点等）
- QuestionThread   : 问题线索（根问题、子问题、已探索/未探索方面）
- DialogueExchange : 一次 Agent 发言，创建后不可变
- AgentResponse    : 生成该发言的完整响应（工具明细等），只被 DialogueExchange 单向持有
- Insight          : 从文本或记忆综合中提取出的洞见
- Memory           : 四种记忆类型共享的统一结构
- PhilosophicalConcept / ProceduralPattern : 语义记忆与程序记忆的载荷

【Java 开发者类比】
- @dataclass 等价于 Lombok 的 @Data
- Literal[...] 类型别名相当于一个轻量的 enum
- to_dict()/from_dict() 相当于手写的 Jackson 序列化/反序列化
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, get_args

from greflect.utils.helpers import new_id, parse_timestamp, to_jsonable, utcnow

AgentRole = Literal["questioner", "explorer"]
Phase = Literal["questioning", "responding", "reflecting", "synthesizing"]
ExchangeType = Literal["question", "response", "reflection", "insight"]
Significance = Literal["low", "medium", "high", "breakthrough"]
InsightSource = Literal["questioner", "explorer", "synthesis"]
MemoryType = Literal["episodic", "semantic", "procedural", "working"]
ConceptSource = Literal["discovered", "searched", "inferred"]
EventType = Literal["agent_response", "insight_generated", "memory_stored", "phase_change"]

AGENT_ROLES: tuple[str, ...] = get_args(AgentRole)
PHASES: tuple[str, ...] = get_args(Phase)
EXCHANGE_TYPES: tuple[str, ...] = get_args(ExchangeType)
# 有序刻度：low < medium < high < breakthrough
SIGNIFICANCE_LEVELS: tuple[str, ...] = get_args(Significance)
INSIGHT_SOURCES: tuple[str, ...] = get_args(InsightSource)
MEMORY_TYPES: tuple[str, ...] = get_args(MemoryType)
# 拥有向量集合的三种记忆类型（working 只存在于进程内）
VECTOR_MEMORY_TYPES: tuple[str, ...] = ("episodic", "semantic", "procedural")

# 工作记忆中保留的最近对话条数
RECENT_EXCHANGE_LIMIT = 10


def opposite_agent(agent: str) -> AgentRole:
    """questioner ↔ explorer 互换。"""
    return "explorer" if agent == "questioner" else "questioner"


def _str_list(value: Any) -> list[str]:
    """把任意输入规整为去重、保序的字符串列表（None 视为空）。"""
    if not value:
        return []
    if isinstance(value, str):
        value = [value]
    seen: dict[str, None] = {}
    for item in value:
        if item is not None:
            seen.setdefault(str(item), None)
    return list(seen)


@dataclass
class Insight:
    """
    洞见 - 由文本模式匹配或记忆综合产生，创建后不再修改。

    属性:
        id: 唯一标识
        content: 洞见文本
        significance: 重要程度（low/medium/high/breakthrough）
        related_concepts: 相关概念
        generated_by: 产生者（questioner/explorer/synthesis）
        timestamp: 创建时间
        verified: 是否经过验证（默认 False）
    """
    content: str
    significance: Significance = "medium"
    related_concepts: list[str] = field(default_factory=list)
    generated_by: InsightSource = "explorer"
    id: str = field(default_factory=new_id)
    timestamp: datetime = field(default_factory=utcnow)
    verified: bool = False

    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Insight":
        significance = data.get("significance")
        generated_by = data.get("generated_by")
        return cls(
            id=str(data.get("id") or new_id()),
            content=str(data.get("content") or ""),
            significance=significance if significance in SIGNIFICANCE_LEVELS else "medium",
            related_concepts=_str_list(data.get("related_concepts")),
            generated_by=generated_by if generated_by in INSIGHT_SOURCES else "synthesis",
            timestamp=parse_timestamp(data.get("timestamp") or data.get("created_at")),
            verified=bool(data.get("verified", False)),
        )


@dataclass
class AgentResponse:
    """
    一次 Agent 回合的完整响应（用于审计与原始日志）。

    只作为 DialogueExchange 的内嵌成员存在，不反向引用 exchange。
    tool_details 中每一项是 ToolOutcome.to_dict() 的结果。
    """
    content: str
    type: ExchangeType
    confidence: float
    suggested_next_agent: str
    tools_used: list[str] = field(default_factory=list)
    memory_references: list[str] = field(default_factory=list)
    new_insights: list[Insight] = field(default_factory=list)
    tool_details: list[dict[str, Any]] | None = None


@dataclass(frozen=True)
class DialogueExchange:
    """
    一次对话交换（某个 Agent 的一次发言）。

    frozen=True 保证创建后不可变，与关系库中的 dialogue_exchanges 行一一对应。
    depth 是创建时 DialogueState.depth 的快照。
    """
    agent: AgentRole
    type: ExchangeType
    content: str
    depth: int = 0
    related_memories: tuple[str, ...] = ()
    timestamp: datetime = field(default_factory=utcnow)
    response: AgentResponse | None = None

    def to_dict(self, include_response: bool = True) -> dict[str, Any]:
        data = {
            "agent": self.agent,
            "type": self.type,
            "content": self.content,
            "depth": self.depth,
            "related_memories": list(self.related_memories),
            "timestamp": self.timestamp.isoformat(),
        }
        if include_response and self.response is not None:
            data["response"] = to_jsonable(self.response)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DialogueExchange":
        agent = data.get("agent")
        kind = data.get("type") or data.get("exchange_type")
        return cls(
            agent=agent if agent in AGENT_ROLES else "questioner",
            type=kind if kind in EXCHANGE_TYPES else "response",
            content=str(data.get("content") or ""),
            depth=int(data.get("depth") or 0),
            related_memories=tuple(_str_list(data.get("related_memories"))),
            timestamp=parse_timestamp(data.get("timestamp") or data.get("created_at")),
        )


@dataclass
class WorkingMemory:
    """
    工作记忆 - Orchestrator 当前回合使用的上下文。

    recent_exchanges 按时间顺序排列（最新的在最后），最多保留 10 条。
    其余四个字段语义上是集合，这里用去重列表表示以便 JSON 持久化。
    """
    current_topic: str = ""
    recent_exchanges: list[DialogueExchange] = field(default_factory=list)
    focus_areas: list[str] = field(default_factory=list)
    assumptions: list[str] = field(default_factory=list)
    contradictions: list[str] = field(default_factory=list)
    open_questions: list[str] = field(default_factory=list)

    def add_exchange(self, exchange: DialogueExchange) -> None:
        """追加一条交换，超过上限时淘汰最旧的。"""
        self.recent_exchanges.append(exchange)
        if len(self.recent_exchanges) > RECENT_EXCHANGE_LIMIT:
            self.recent_exchanges = self.recent_exchanges[-RECENT_EXCHANGE_LIMIT:]

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_topic": self.current_topic,
            "recent_exchanges": [e.to_dict(include_response=False) for e in self.recent_exchanges],
            "focus_areas": list(self.focus_areas),
            "assumptions": list(self.assumptions),
            "contradictions": list(self.contradictions),
            "open_questions": list(self.open_questions),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "WorkingMemory":
        data = data or {}
        exchanges = [DialogueExchange.from_dict(e) for e in data.get("recent_exchanges") or [] if isinstance(e, dict)]
        return cls(
            current_topic=str(data.get("current_topic") or ""),
            recent_exchanges=exchanges[-RECENT_EXCHANGE_LIMIT:],
            focus_areas=_str_list(data.get("focus_areas")),
            assumptions=_str_list(data.get("assumptions")),
            contradictions=_str_list(data.get("contradictions")),
            open_questions=_str_list(data.get("open_questions")),
        )


@dataclass
class QuestionThread:
    """问题线索：一个根问题下的子问题谱系。depth 是线索嵌套深度的最高水位。"""
    root_question: str = ""
    sub_questions: list[str] = field(default_factory=list)
    explored_aspects: list[str] = field(default_factory=list)
    unexplored_aspects: list[str] = field(default_factory=list)
    depth: int = 0

    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "QuestionThread":
        data = data or {}
        return cls(
            root_question=str(data.get("root_question") or ""),
            sub_questions=[str(q) for q in data.get("sub_questions") or []],
            explored_aspects=_str_list(data.get("explored_aspects")),
            unexplored_aspects=_str_list(data.get("unexplored_aspects")),
            depth=int(data.get("depth") or 0),
        )


@dataclass
class DialogueState:
    """
    对话状态 - 每次运行只有一个实例。

    不变式：
    - depth 只会被显式的"新问题线索"操作重置为 0
    - depth > 10 视为数据损坏，恢复时会被钳制为 0
    - insights 只追加，长度由调用方（LoopController）控制
    """
    id: str = field(default_factory=new_id)
    current_agent: AgentRole = "questioner"
    phase: Phase = "questioning"
    depth: int = 0
    context: WorkingMemory = field(default_factory=WorkingMemory)
    question_thread: QuestionThread = field(default_factory=QuestionThread)
    insights: list[Insight] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "current_agent": self.current_agent,
            "phase": self.phase,
            "depth": self.depth,
            "context": self.context.to_dict(),
            "question_thread": self.question_thread.to_dict(),
            "insights": [i.to_dict() for i in self.insights],
        }


@dataclass
class Memory:
    """
    四种记忆类型共享的统一结构。

    content 随类型而变：
    - episodic  : {"exchange": {...}, "significance": ..., "context": [...]}
    - semantic  : PhilosophicalConcept 的字典形式
    - procedural: ProceduralPattern 的字典形式
    relevance_score 是检索时派生的分数，不作为身份的一部分持久化。
    """
    id: str
    type: MemoryType
    content: Any
    timestamp: datetime = field(default_factory=utcnow)
    tags: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    relevance_score: float | None = None


@dataclass
class PhilosophicalConcept:
    """语义记忆载荷。name 唯一；exploration_level 取值 1-10，重复写入时取最大值。"""
    name: str
    definition: str
    related_concepts: list[str] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)
    exploration_level: int = 1


@dataclass
class ProceduralPattern:
    """程序记忆载荷：命名的策略模式，effectiveness 取值 [0, 1]。"""
    name: str
    description: str
    effectiveness: float
    conditions: list[str] = field(default_factory=list)
    examples: list[str] = field(default_factory=list)


@dataclass
class FrameworkEvent:
    """Orchestrator 内部事件（仅保留在内存中，用于调试与观测）。"""
    type: EventType
    data: Any
    source: str
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class StepOutcome:
    """
    一次对话步骤的产出。

    state 是步骤结束后的新状态（调用方持有权威副本），
    exchange 是本回合的发言，new_insights 是本回合新增的洞见。
    """
    state: DialogueState
    exchange: DialogueExchange
    new_insights: list[Insight] = field(default_factory=list)
