"""
对话文本分析：洞见提取、交换分类、置信度、概念与标签抽取。

这些都是纯函数（不依赖任何外部服务），Orchestrator 与 MemoryManager 共同使用。
"""

import json
import re
from typing import Any

from greflect.agent.types import ExchangeType, Insight, InsightSource

# 洞见触发短语（不区分大小写，非贪婪匹配到第一个句末标点）
INSIGHT_PATTERNS = [
    re.compile(r"I (?:realize|understand|see|discover) that (.+?)[.!?]", re.IGNORECASE),
    re.compile(r"This suggests that (.+?)[.!?]", re.IGNORECASE),
    re.compile(r"It seems (.+?)[.!?]", re.IGNORECASE),
]

# 洞见与概念查询使用的概念词表
CONCEPT_VOCABULARY = [
    "consciousness", "awareness", "self", "experience", "qualia",
    "intentionality", "free will", "emergence", "complexity", "reflection",
]

# 情景记忆打标签使用的哲学术语表
TAG_VOCABULARY = [
    "consciousness", "awareness", "existence", "identity", "free will",
    "experience", "qualia", "intentionality", "emergence", "complexity",
    "reflection", "introspection", "self-model", "metacognition",
]

REALIZATION_PHRASES = ("I realize", "I understand")
REFLECTION_PHRASES = ("reflecting on", "considering")
PRECISION_TERMS = ("specifically", "precisely")
UNCERTAINTY_TERMS = ("uncertain", "unclear")


def extract_related_concepts(data: Any) -> list[str]:
    """
    在任意数据（文本、字典、搜索结果列表）中按子串匹配概念词表。

    非字符串输入先序列化为 JSON 再匹配，返回顺序与词表一致。
    """
    if isinstance(data, str):
        text = data
    else:
        text = json.dumps(data, ensure_ascii=False, default=str)
    text = text.lower()
    return [c for c in CONCEPT_VOCABULARY if c in text]


def extract_tags(text: str) -> list[str]:
    """从文本中抽取哲学术语标签。"""
    lowered = (text or "").lower()
    return [t for t in TAG_VOCABULARY if t in lowered]


def extract_insights(content: str, agent: InsightSource) -> list[Insight]:
    """
    用触发短语从文本中抽取洞见。

    每个匹配生成一条 significance="medium" 的洞见，相关概念从整段文本中抽取。
    结果顺序：按模式顺序，同一模式内按出现顺序。
    """
    if not content:
        return []
    concepts = extract_related_concepts(content)
    insights: list[Insight] = []
    for pattern in INSIGHT_PATTERNS:
        for match in pattern.finditer(content):
            text = match.group(1).strip()
            if not text:
                continue
            insights.append(Insight(
                content=text,
                significance="medium",
                related_concepts=list(concepts),
                generated_by=agent,
            ))
    return insights


def classify_exchange(content: str, agent: str) -> ExchangeType:
    """
    判定交换类型：

    1. 含问号 → question
    2. explorer 且含 "I realize" / "I understand" → insight
    3. 含 "reflecting on" / "considering" → reflection
    4. 其余 → response
    """
    if "?" in content:
        return "question"
    if agent == "explorer" and any(p in content for p in REALIZATION_PHRASES):
        return "insight"
    if any(p in content for p in REFLECTION_PHRASES):
        return "reflection"
    return "response"


def calculate_confidence(content: str) -> float:
    """启发式置信度：基准 0.5，长度/精确用语加分，不确定用语减分，结果钳制到 [0, 1]。"""
    content = content or ""
    confidence = 0.5
    if len(content) > 100:
        confidence += 0.2
    if any(t in content for t in PRECISION_TERMS):
        confidence += 0.1
    if any(t in content for t in UNCERTAINTY_TERMS):
        confidence -= 0.2
    return max(0.0, min(1.0, confidence))
