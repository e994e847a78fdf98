"""
对话编排器 (agent/orchestrator.py) - 执行 Questioner / Explorer 的单个回合。

模块职责：
    一次 step() 恰好执行当前 Agent 的一个回合：
      1. 由工作记忆构建上下文，选出该角色可用的工具
      2. 调用该角色配置的模型（带工具定义）
      3. 顺序执行模型请求的工具；单个工具失败只记录在 tool_details 中
      4. 工具调用后没有文本时，带着工具结果再追问一次模型
      5. 提取洞见、判定交换类型、计算置信度
      6. 更新状态：最近交换、洞见日志、问题线索、下一个 Agent、阶段、深度
      7. 把交换保存为情景记忆（significance 固定为 medium），强化本回合的工具组合

状态所有权：
    step(state) 在 state 的深拷贝上工作并返回 StepOutcome，调用方（LoopController）
    持有权威状态；execute_dialogue_step() 是在编排器自身副本上工作的便捷包装。

在架构中的位置：
    LoopController → DialogueOrchestrator.step() → LLMProvider / ToolRegistry / MemoryManager
"""

import copy
import json
from typing import Any

from loguru import logger

from greflect.agent.analysis import calculate_confidence, classify_exchange, extract_insights
from greflect.agent.context import ROLE_TOOLS, TOOL_FOLLOW_UP_PROMPT, build_messages, create_initial_state
from greflect.agent.tools.concept import ConceptLookupTool
from greflect.agent.tools.memory import MemorySearchTool, MemorySynthesisTool, SynthesisResult
from greflect.agent.tools.registry import ToolOutcome, ToolRegistry
from greflect.agent.tools.web import WebSearchTool
from greflect.agent.types import (
    AGENT_ROLES,
    PHASES,
    AgentResponse,
    AgentRole,
    DialogueExchange,
    DialogueState,
    EventType,
    FrameworkEvent,
    Insight,
    Phase,
    ProceduralPattern,
    QuestionThread,
    Significance,
    StepOutcome,
    WorkingMemory,
    opposite_agent,
)
from greflect.config.schema import AgentModelConfig, AgentsConfig
from greflect.memory.manager import MemoryManager
from greflect.providers.base import LLMProvider, LLMResponse
from greflect.providers.brave import BraveSearch
from greflect.utils.helpers import to_jsonable, truncate_string

# 恢复时超过该值的深度视为损坏
MAX_VALID_DEPTH = 10
# 超过该长度的问题才推进深度
DEEP_QUESTION_CHARS = 100
EVENT_HISTORY_LIMIT = 100
# 回填给模型的单个工具结果的最大字符数
TOOL_RESULT_MAX_CHARS = 4000

PHASE_BY_TYPE: dict[str, Phase] = {
    "question": "questioning",
    "response": "responding",
    "reflection": "reflecting",
}


class DialogueStepError(RuntimeError):
    """模型调用本身失败（finish_reason == "error"），交由 LoopController 计入连续错误。"""


class DialogueOrchestrator:
    """
    Questioner / Explorer 双角色对话编排器。

    参数:
        providers: 角色 → LLMProvider（questioner、explorer 必须提供）
        memory: 记忆管理器
        search: Brave 搜索客户端（concept_lookup 与 web_search 共用）
        agents: 各角色的模型配置
        run_id: 当前运行 ID（情景记忆归属），可在 LoopController.initialize() 后再绑定
        web_max_results: 网页搜索默认结果数
    """

    def __init__(
        self,
        providers: dict[str, LLMProvider],
        memory: MemoryManager,
        search: BraveSearch,
        agents: AgentsConfig | None = None,
        run_id: str | None = None,
        web_max_results: int = 5,
    ):
        self.providers = providers
        self.memory = memory
        self.search = search
        self.agents = agents or AgentsConfig()
        self.run_id = run_id
        self.web_max_results = web_max_results

        self.tools = ToolRegistry()
        self._register_default_tools()

        self._state = create_initial_state()
        self._events: list[FrameworkEvent] = []

    def _register_default_tools(self) -> None:
        """注册四种对话工具。"""
        self.tools.register(MemorySearchTool(self.memory))
        self.tools.register(MemorySynthesisTool(self.memory))
        self.tools.register(ConceptLookupTool(self.search, self.memory, max_results=self.web_max_results))
        self.tools.register(WebSearchTool(self.search, max_results=self.web_max_results))

    def _role_config(self, agent: AgentRole) -> AgentModelConfig:
        return getattr(self.agents, agent)

    # ========== 单步执行 ==========

    async def step(self, state: DialogueState) -> StepOutcome:
        """
        对给定状态执行一个回合，返回新状态与本回合的交换。

        传入的 state 不会被修改。模型调用失败时抛出 DialogueStepError；
        关系库写入失败时原样抛出。
        """
        if not self.run_id:
            raise RuntimeError("DialogueOrchestrator has no run_id bound")

        working = copy.deepcopy(state)
        agent = working.current_agent

        response = await self._run_agent(working, agent)
        exchange = DialogueExchange(
            agent=agent,
            type=response.type,
            content=response.content,
            depth=working.depth,
            related_memories=tuple(response.memory_references),
            response=response,
        )

        self._apply_response(working, exchange, response)

        significance = self.assess_exchange_significance(exchange, response)
        memory = await self.memory.store_episodic_memory(self.run_id, exchange, significance)
        self._emit("memory_stored", {"memory_id": memory.id, "type": "episodic", "significance": significance}, agent)

        if response.tools_used:
            await self._reinforce_tool_pattern(agent, response)

        self._emit("agent_response", {"exchange": exchange.to_dict(include_response=False)}, agent)
        return StepOutcome(state=working, exchange=exchange, new_insights=list(response.new_insights))

    async def execute_dialogue_step(self) -> DialogueExchange:
        """在编排器自身持有的状态上执行一个回合，并返回本回合的交换。"""
        outcome = await self.step(self._state)
        self._state = outcome.state
        return outcome.exchange

    async def _run_agent(self, state: DialogueState, agent: AgentRole) -> AgentResponse:
        """调用模型、执行工具，生成 AgentResponse。"""
        cfg = self._role_config(agent)
        provider = self.providers[agent]
        tool_names = ROLE_TOOLS[agent]
        messages = build_messages(state, agent)

        for name in ("memory_search", "memory_synthesis"):
            tool = self.tools.get(name)
            if isinstance(tool, (MemorySearchTool, MemorySynthesisTool)):
                tool.set_context(state.context)

        response = await provider.chat(
            messages=messages,
            tools=self.tools.get_definitions(tool_names),
            model=cfg.model,
            max_tokens=cfg.max_tokens,
            temperature=cfg.temperature,
            tool_choice="auto",
        )
        if response.is_error:
            raise DialogueStepError(f"{agent} model call failed: {response.content}")
        if response.usage:
            logger.debug(
                f"[{agent}] Token usage: prompt {response.usage.get('prompt_tokens', 0)}, "
                f"completion {response.usage.get('completion_tokens', 0)}"
            )

        raw_content = response.content or ""
        outcomes = await self._execute_tools(agent, response, tool_names)

        if response.has_tool_calls and not raw_content.strip():
            raw_content = await self._follow_up(provider, cfg, messages, response, outcomes, agent)

        new_insights = extract_insights(raw_content, agent)
        for outcome in outcomes:
            if outcome.ok and isinstance(outcome.result, SynthesisResult):
                new_insights.extend(outcome.result.insights)

        content = raw_content
        if not content.strip():
            logger.error(f"[{agent}] Empty response from model")
            content = f"Error: AI model returned empty response. Topic: {state.context.current_topic}"

        tools_used = [o.tool for o in outcomes if o.ok]
        return AgentResponse(
            content=content.strip(),
            type=classify_exchange(content, agent),
            confidence=calculate_confidence(content),
            suggested_next_agent=opposite_agent(agent),
            tools_used=tools_used,
            memory_references=_memory_references(outcomes),
            new_insights=new_insights,
            tool_details=[o.to_dict() for o in outcomes] or None,
        )

    async def _execute_tools(
        self,
        agent: AgentRole,
        response: LLMResponse,
        allowed: list[str],
    ) -> list[ToolOutcome]:
        """按顺序执行工具调用；不在该角色工具集中的调用记为错误。"""
        outcomes: list[ToolOutcome] = []
        for call in response.tool_calls:
            if call.name not in allowed:
                logger.warning(f"[{agent}] Tool '{call.name}' is not available to this role")
                outcomes.append(ToolOutcome(
                    tool=call.name,
                    arguments=call.arguments,
                    error=f"Tool '{call.name}' is not available to the {agent}",
                ))
                continue

            args_str = json.dumps(call.arguments, ensure_ascii=False)
            logger.info(f"[{agent}] Executing tool: {call.name}({truncate_string(args_str, 200)})")
            outcome = await self.tools.execute(call.name, call.arguments)
            if outcome.ok:
                logger.info(f"[{agent}] Tool {call.name} result: {truncate_string(_result_text(outcome), 200)}")
            else:
                logger.error(f"[{agent}] Tool {call.name} failed: {outcome.error}")
            outcomes.append(outcome)
        return outcomes

    async def _follow_up(
        self,
        provider: LLMProvider,
        cfg: AgentModelConfig,
        messages: list[dict[str, Any]],
        response: LLMResponse,
        outcomes: list[ToolOutcome],
        agent: AgentRole,
    ) -> str:
        """带着工具结果再调用一次模型（不再提供工具），返回其文本。"""
        follow_up = list(messages)
        follow_up.append({
            "role": "assistant",
            "content": response.content or None,
            "tool_calls": [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {"name": tc.name, "arguments": json.dumps(tc.arguments, ensure_ascii=False)},
                }
                for tc in response.tool_calls
            ],
        })
        for tc, outcome in zip(response.tool_calls, outcomes):
            follow_up.append({
                "role": "tool",
                "tool_call_id": tc.id,
                "name": tc.name,
                "content": truncate_string(_result_text(outcome), TOOL_RESULT_MAX_CHARS),
            })
        follow_up.append({"role": "user", "content": TOOL_FOLLOW_UP_PROMPT})

        logger.debug(f"[{agent}] Tools returned no text; requesting follow-up reply")
        second = await provider.chat(
            messages=follow_up,
            model=cfg.model,
            max_tokens=cfg.max_tokens,
            temperature=cfg.temperature,
        )
        if second.is_error:
            logger.warning(f"[{agent}] Follow-up call failed: {second.content}")
            return ""
        return second.content or ""

    # ========== 状态更新 ==========

    def _apply_response(self, state: DialogueState, exchange: DialogueExchange, response: AgentResponse) -> None:
        """把一个回合的结果合并进状态（就地修改传入的工作副本）。"""
        state.context.add_exchange(exchange)

        if response.new_insights:
            state.insights.extend(response.new_insights)
            for insight in response.new_insights:
                self._emit("insight_generated", insight.to_dict(), exchange.agent)

        if response.type == "question":
            thread = state.question_thread
            thread.sub_questions.append(response.content)
            thread.depth = max(thread.depth, state.depth + 1)

        suggested = response.suggested_next_agent
        if suggested in AGENT_ROLES:
            state.current_agent = suggested
        else:
            state.current_agent = opposite_agent(state.current_agent)

        previous = state.phase
        if response.new_insights:
            state.phase = "synthesizing"
        elif response.type in PHASE_BY_TYPE:
            state.phase = PHASE_BY_TYPE[response.type]
        if state.phase != previous:
            self._emit("phase_change", {"from": previous, "to": state.phase}, "orchestrator")

        if response.type == "question" and len(response.content) > DEEP_QUESTION_CHARS:
            state.depth += 1

    def assess_exchange_significance(self, exchange: DialogueExchange, response: AgentResponse) -> Significance:
        """交换的重要程度。目前固定为 medium。"""
        return "medium"

    async def _reinforce_tool_pattern(self, agent: AgentRole, response: AgentResponse) -> None:
        """把本回合使用的工具组合记为程序记忆，effectiveness 取回合置信度。"""
        tools = sorted(set(response.tools_used))
        pattern = ProceduralPattern(
            name=f"{agent}:{'+'.join(tools)}",
            description=f"{agent} turn using {', '.join(tools)}",
            effectiveness=response.confidence,
            conditions=[f"agent={agent}", f"type={response.type}"],
            examples=[truncate_string(response.content, 200)],
        )
        try:
            await self.memory.store_procedural_memory(pattern)
        except Exception as e:
            logger.error(f"Failed to reinforce procedural pattern {pattern.name}: {e}")

    def _emit(self, event_type: EventType, data: Any, source: str) -> None:
        self._events.append(FrameworkEvent(type=event_type, data=data, source=source))
        if len(self._events) > EVENT_HISTORY_LIMIT:
            self._events = self._events[-EVENT_HISTORY_LIMIT:]

    # ========== 对外接口 ==========

    def get_current_state(self) -> DialogueState:
        """返回当前状态的深拷贝。"""
        return copy.deepcopy(self._state)

    def restore_state(self, partial: dict[str, Any]) -> DialogueState:
        """
        把部分状态合并进当前状态。

        支持的键：id, current_agent, phase, depth, context, question_thread, insights
        （context / question_thread 可以是对象或字典）。缺失或为 None 的键保持原值；
        深度大于 10 或无法解析时视为损坏，重置为 0。返回合并后状态的深拷贝。
        """
        state = copy.deepcopy(self._state)

        if partial.get("id"):
            state.id = str(partial["id"])
        if partial.get("current_agent") in AGENT_ROLES:
            state.current_agent = partial["current_agent"]
        if partial.get("phase") in PHASES:
            state.phase = partial["phase"]
        if partial.get("depth") is not None:
            try:
                state.depth = int(partial["depth"])
            except (TypeError, ValueError):
                logger.warning(f"Unparseable depth {partial['depth']!r}, resetting to 0")
                state.depth = 0

        context = partial.get("context")
        if isinstance(context, WorkingMemory):
            state.context = copy.deepcopy(context)
        elif isinstance(context, dict):
            state.context = WorkingMemory.from_dict(context)

        thread = partial.get("question_thread")
        if isinstance(thread, QuestionThread):
            state.question_thread = copy.deepcopy(thread)
        elif isinstance(thread, dict):
            state.question_thread = QuestionThread.from_dict(thread)

        insights = partial.get("insights")
        if insights is not None:
            state.insights = [
                copy.deepcopy(i) if isinstance(i, Insight) else Insight.from_dict(i)
                for i in insights
                if isinstance(i, (Insight, dict))
            ]

        if state.depth > MAX_VALID_DEPTH or state.depth < 0:
            logger.warning(f"Corrupted depth detected ({state.depth}), resetting to 0")
            state.depth = 0

        self._state = state
        logger.info(f"Restored orchestrator state: {state.current_agent} at depth {state.depth}")
        return copy.deepcopy(state)

    def get_recent_insights(self, limit: int = 5) -> list[Insight]:
        """最近 limit 条洞见（最旧在前）。"""
        if limit <= 0:
            return []
        return copy.deepcopy(self._state.insights[-limit:])

    def get_event_history(self) -> list[FrameworkEvent]:
        return list(self._events)


def _result_text(outcome: ToolOutcome) -> str:
    if not outcome.ok:
        return f"Error: {outcome.error}"
    return json.dumps(to_jsonable(outcome.result), ensure_ascii=False)


def _memory_references(outcomes: list[ToolOutcome]) -> list[str]:
    """从成功的工具结果中收集记忆 ID（对象或列表元素上存在 id 时）。"""
    refs: list[str] = []
    for outcome in outcomes:
        if not outcome.ok or outcome.result is None:
            continue
        items = outcome.result if isinstance(outcome.result, list) else [outcome.result]
        for item in items:
            ref = item.get("id") if isinstance(item, dict) else getattr(item, "id", None)
            if ref:
                refs.append(str(ref))
    return list(dict.fromkeys(refs))
