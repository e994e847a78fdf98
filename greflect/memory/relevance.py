"""
上下文相关度打分。

只用于对已经检索出来的候选记忆重新排序，不代表绝对相关度。
"""

from datetime import datetime

from greflect.agent.types import Memory, WorkingMemory
from greflect.utils.helpers import utcnow

TOPIC_BONUS = 0.2
FOCUS_BONUS = 0.15
# 情景记忆的时效加分：0 小时 0.1，每小时递减 0.01，10 小时后为 0
RECENCY_MAX = 0.1
RECENCY_DECAY_PER_HOUR = 0.01
SIGNIFICANCE_BONUS = {"breakthrough": 0.3, "high": 0.2, "medium": 0.1, "low": 0.0}


def contextual_relevance(memory: Memory, context: WorkingMemory, now: datetime | None = None) -> float:
    """
    计算一条记忆在当前工作记忆下的相关度。

    从原始相似度出发：
    - 任一标签出现在当前话题中 +0.2
    - 任一标签出现在某个关注点中 +0.15
    - 情景记忆按时效加 0 ~ 0.1
    - 按 metadata.significance 加分（breakthrough 0.3 / high 0.2 / medium 0.1）
    总分上限 1.0。
    """
    score = memory.relevance_score or 0.0
    tags = [t.lower() for t in memory.tags if t]
    topic = (context.current_topic or "").lower()
    focus = [a.lower() for a in context.focus_areas]

    if any(tag in topic for tag in tags):
        score += TOPIC_BONUS

    if any(tag in area for tag in tags for area in focus):
        score += FOCUS_BONUS

    if memory.type == "episodic":
        hours = ((now or utcnow()) - memory.timestamp).total_seconds() / 3600
        score += max(0.0, min(RECENCY_MAX, RECENCY_MAX - hours * RECENCY_DECAY_PER_HOUR))

    significance = (memory.metadata or {}).get("significance")
    score += SIGNIFICANCE_BONUS.get(significance, 0.0)

    return min(score, 1.0)


def rerank(memories: list[Memory], context: WorkingMemory, limit: int) -> list[Memory]:
    """按上下文相关度降序重排并截取前 limit 条；分数相同时保持原检索顺序。"""
    now = utcnow()
    scored = [(contextual_relevance(m, context, now), i, m) for i, m in enumerate(memories)]
    scored.sort(key=lambda item: (-item[0], item[1]))
    return [m for _, _, m in scored[:limit]]
