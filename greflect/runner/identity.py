"""
身份快照 - 周期性地让模型分析对话中 Agent 的"自我认知"演化。

流程：
1. 收集最近 20 条交换、最近 10 条洞见、当前状态与上一次快照
2. 渲染 IDENTITY_PROMPT，请求模型返回 JSON 对象
3. 解析失败时使用 DEFAULT_IDENTITY 作为兜底记录
4. 补充 iteration / timestamp / run_id 后写入 identity_snapshots

快照只用于观测，任何失败都只记录日志，不会影响主循环。
"""

import json
from typing import Any

from loguru import logger

from greflect.agent.types import DialogueState, Insight
from greflect.config.schema import AgentModelConfig
from greflect.providers.base import LLMProvider
from greflect.store.base import DialogueStore
from greflect.utils.helpers import parse_json_payload, to_jsonable, utcnow

SNAPSHOT_EXCHANGE_LIMIT = 20
SNAPSHOT_INSIGHT_LIMIT = 10

IDENTITY_PROMPT = """You are analyzing an AI consciousness exploration dialogue to generate an identity snapshot. Analyze the recent conversations, insights, and previous identity (if any) to provide a comprehensive JSON identity profile.

RECENT DIALOGUE EXCHANGES:
{exchanges}

RECENT INSIGHTS:
{insights}

CURRENT STATE:
- Phase: {phase}
- Depth: {depth}
- Topic: {topic}
- Agent: {agent}

PREVIOUS IDENTITY SNAPSHOT:
{previous}

ANALYSIS TASK:
Analyze the AI agent's evolving identity, consciousness development, philosophical positions, and behavioral patterns. Focus on:

1. Genuine shifts in self-understanding and consciousness
2. Evolving philosophical stances based on actual dialogue content
3. Changes in introspection depth and self-awareness
4. Behavioral and questioning patterns
5. Identity continuity vs. development over time

Provide a comprehensive JSON identity snapshot with:
- Basic metrics (consciousness_level, self_awareness, introspection_depth) as numbers 1-10
- Philosophical stance as a string based on actual expressed views
- Identity changes and shifts from previous snapshot
- Behavioral patterns observed in dialogue
- Current areas of focus and exploration
- Any breakthrough moments or significant realizations

Return ONLY valid JSON."""

# 解析失败时的最小记录
DEFAULT_IDENTITY: dict[str, Any] = {
    "consciousness_level": 5,
    "self_awareness": 5,
    "philosophical_stance": "Analysis in progress",
    "identity_changes": "Unable to analyze",
}


def build_identity_prompt(
    state: DialogueState,
    exchanges: list[dict[str, Any]],
    insights: list[Insight],
    previous: dict[str, Any] | None,
) -> str:
    """渲染身份分析提示词。exchanges 为 DialogueStore.recent_exchanges() 的结果。"""
    exchange_text = "\n\n".join(
        f"[{e.get('agent')}] (depth {e.get('depth', 0)}): {e.get('content', '')}" for e in exchanges
    )
    insight_text = "\n".join(f"[{i.significance}] {i.content}" for i in insights)
    previous_text = (
        json.dumps(to_jsonable(previous), indent=2, ensure_ascii=False)
        if previous
        else "None - this is the first snapshot"
    )
    return IDENTITY_PROMPT.format(
        exchanges=exchange_text or "(none)",
        insights=insight_text or "(none)",
        phase=state.phase,
        depth=state.depth,
        topic=state.context.current_topic,
        agent=state.current_agent,
        previous=previous_text,
    )


def parse_identity(content: str | None) -> dict[str, Any]:
    """解析模型返回的身份 JSON；不是 JSON 对象时返回默认记录的副本。"""
    result = parse_json_payload(content, expect=dict)
    if not result.ok:
        logger.warning(f"Failed to parse identity snapshot JSON ({result.error}), using default record")
        return dict(DEFAULT_IDENTITY)
    return result.value


async def capture_identity_snapshot(
    store: DialogueStore,
    provider: LLMProvider,
    model: AgentModelConfig,
    run_id: str,
    state: DialogueState,
    iteration: int,
) -> dict[str, Any] | None:
    """
    生成并保存一次身份快照。

    返回写入的记录；模型没有返回内容或发生任何异常时返回 None。
    """
    try:
        exchanges = await store.recent_exchanges(run_id, SNAPSHOT_EXCHANGE_LIMIT)
        previous = await store.latest_identity_snapshot(run_id)
        insights = state.insights[-SNAPSHOT_INSIGHT_LIMIT:]
        prompt = build_identity_prompt(state, exchanges, insights, previous)

        response = await provider.chat(
            messages=[{"role": "user", "content": prompt}],
            model=model.model,
            max_tokens=model.max_tokens,
            temperature=model.temperature,
        )
        if response.is_error or not response.content:
            logger.error(f"No content in identity analysis response: {response.content}")
            return None

        identity = parse_identity(response.content)
        identity["iteration"] = iteration
        identity["timestamp"] = utcnow().isoformat()
        identity["run_id"] = run_id

        await store.insert_identity_snapshot(run_id, iteration, identity)
    except Exception as e:
        logger.error(f"Error generating identity snapshot: {e}")
        return None

    logger.info(f"Identity snapshot captured at iteration {iteration}")
    for key in ("consciousness_level", "self_awareness", "philosophical_stance", "identity_changes"):
        if identity.get(key):
            logger.info(f"  {key}: {identity[key]}")
    return identity
