"""
测试夹具：内存版的存储、脚本化的 LLM 提供者与假搜索客户端。

所有测试都不访问网络、数据库或真实模型。
"""

import json
import math
from datetime import timedelta
from typing import Any

import pytest
from loguru import logger

from greflect.agent.orchestrator import DialogueOrchestrator
from greflect.agent.types import (
    DialogueExchange,
    DialogueState,
    Insight,
    Memory,
    PhilosophicalConcept,
    ProceduralPattern,
)
from greflect.memory.manager import MemoryManager
from greflect.providers.base import LLMProvider, LLMResponse, ToolCallRequest
from greflect.providers.brave import SearchResult
from greflect.store.base import DialogueStore, VectorMatch, VectorStore
from greflect.utils.helpers import new_id, to_jsonable, utcnow


class FakeProvider(LLMProvider):
    """按顺序返回预设响应；脚本耗尽后返回一个固定的普通回答。"""

    def __init__(self, responses: list[LLMResponse] | None = None, embedding: list[float] | None = None):
        super().__init__(api_key="test")
        self.responses = list(responses or [])
        self.embedding = [1.0, 0.0, 0.0, 0.0] if embedding is None else embedding
        self.chat_calls: list[dict[str, Any]] = []
        self.embed_calls: list[str] = []

    def queue(self, *responses: LLMResponse) -> None:
        self.responses.extend(responses)

    async def chat(self, messages, tools=None, model=None, max_tokens=4096, temperature=0.7, tool_choice="auto"):
        self.chat_calls.append({"messages": messages, "tools": tools, "model": model})
        if self.responses:
            return self.responses.pop(0)
        return LLMResponse(content="A plain answer.")

    async def embed(self, text, model=None):
        self.embed_calls.append(text)
        return list(self.embedding)

    def get_default_model(self) -> str:
        return "fake-model"


def text(content: str) -> LLMResponse:
    return LLMResponse(content=content)


def tool_call(name: str, arguments: dict[str, Any], content: str | None = None) -> LLMResponse:
    return LLMResponse(
        content=content,
        tool_calls=[ToolCallRequest(id=f"call_{name}", name=name, arguments=arguments)],
        finish_reason="tool_calls",
    )


def error() -> LLMResponse:
    return LLMResponse(content="Error calling LLM: boom", finish_reason="error")


class FakeSearch:
    """BraveSearch 的替身：返回预设结果或抛出异常。"""

    def __init__(self, results: list[SearchResult] | None = None, fail: bool = False):
        self.results = results or []
        self.fail = fail
        self.queries: list[tuple[str, int]] = []

    async def search(self, query: str, count: int = 5) -> list[SearchResult]:
        self.queries.append((query, count))
        if self.fail:
            raise RuntimeError("search backend down")
        return self.results[:count]


class InMemoryVectorStore(VectorStore):
    """余弦相似度的内存向量库。fail_upsert / fail_search 用于模拟故障。"""

    def __init__(self):
        self.collections: dict[str, dict[str, tuple[list[float], dict[str, Any]]]] = {}
        self.created: list[str] = []
        self.fail_upsert = False
        self.fail_search = False

    async def list_collections(self) -> list[str]:
        return list(self.collections)

    async def create_collection(self, name: str, dimension: int) -> None:
        self.created.append(name)
        self.collections[name] = {}

    async def upsert(self, collection, point_id, vector, payload):
        if self.fail_upsert:
            raise RuntimeError("qdrant unavailable")
        self.collections[collection][point_id] = (vector, payload)

    async def search(self, collection, vector, limit, score_threshold=None):
        if self.fail_search:
            raise RuntimeError("qdrant unavailable")
        matches = []
        for point_id, (stored, payload) in self.collections[collection].items():
            score = _cosine(vector, stored)
            if score_threshold is None or score >= score_threshold:
                matches.append(VectorMatch(id=point_id, score=score, payload=payload))
        matches.sort(key=lambda m: -m.score)
        return matches[:limit]

    async def close(self) -> None:
        return None


def _cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class InMemoryDialogueStore(DialogueStore):
    """DialogueStore 的内存实现，行为与 PostgreSQL 版本的 upsert 语义一致。"""

    def __init__(self):
        self.runs: dict[str, dict[str, Any]] = {}
        self.states: dict[str, dict[str, Any]] = {}
        self.exchanges: list[dict[str, Any]] = []
        self.insights: list[tuple[str, Insight]] = []
        self.snapshots: list[dict[str, Any]] = []
        self.memories: dict[str, tuple[str | None, Memory]] = {}
        self.concepts: dict[str, dict[str, Any]] = {}
        self.patterns: dict[str, dict[str, Any]] = {}
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    async def find_most_active_run(self):
        counts = {rid: 0 for rid in self.runs}
        for row in self.exchanges:
            counts[row["run_id"]] = counts.get(row["run_id"], 0) + 1
        best = max(counts.items(), key=lambda kv: kv[1], default=None)
        if best is None or best[1] == 0:
            return None
        return best[0]

    async def create_run(self, goal, model):
        run_id = new_id()
        self.runs[run_id] = {"goal": goal, "model": model, "status": "running", "ended_at": None}
        return run_id

    async def mark_run_running(self, run_id):
        self.runs[run_id]["status"] = "running"
        self.runs[run_id]["ended_at"] = None

    async def load_latest_dialogue_state(self, run_id):
        rows = [r for r in self.states.values() if r["run_id"] == run_id]
        if not rows:
            return None
        row = max(rows, key=lambda r: r["seq"])
        return json.loads(json.dumps({k: v for k, v in row.items() if k not in ("run_id", "seq")}))

    async def save_dialogue_state(self, run_id, state: DialogueState):
        ctx = state.context
        self.states[state.id] = {
            "id": state.id,
            "run_id": run_id,
            "seq": self._next(),
            "current_agent": state.current_agent,
            "phase": state.phase,
            "depth": state.depth,
            "current_topic": ctx.current_topic,
            "focus_areas": list(ctx.focus_areas),
            "assumptions": list(ctx.assumptions),
            "contradictions": list(ctx.contradictions),
            "open_questions": list(ctx.open_questions),
            "question_thread": state.question_thread.to_dict(),
            "working_memory": ctx.to_dict(),
        }

    async def insert_exchange(self, run_id, exchange: DialogueExchange, tools_used, confidence, tool_details):
        self.exchanges.append({
            "run_id": run_id,
            "agent": exchange.agent,
            "type": exchange.type,
            "content": exchange.content,
            "depth": exchange.depth,
            "related_memories": list(exchange.related_memories),
            "tools_used": list(tools_used),
            "confidence": confidence,
            "tool_details": json.loads(json.dumps(tool_details)),
            "timestamp": exchange.timestamp,
        })

    async def recent_exchanges(self, run_id, limit):
        rows = [r for r in self.exchanges if r["run_id"] == run_id]
        return [dict(r) for r in rows[-limit:]]

    async def insert_insight(self, run_id, insight):
        self.insights.append((run_id, insight))

    async def recent_insights(self, run_id, limit):
        rows = [i for rid, i in self.insights if rid == run_id]
        return rows[-limit:]

    async def latest_identity_snapshot(self, run_id):
        rows = [s for s in self.snapshots if s["run_id"] == run_id]
        return rows[-1]["identity"] if rows else None

    async def insert_identity_snapshot(self, run_id, iteration, identity):
        json.dumps(identity)
        self.snapshots.append({"run_id": run_id, "iteration": iteration, "identity": identity})

    async def insert_memory(self, run_id, memory):
        json.dumps(to_jsonable(memory.content))
        self.memories[memory.id] = (run_id, memory)

    async def upsert_semantic_concept(self, memory_id, concept: PhilosophicalConcept):
        existing = self.concepts.get(concept.name)
        level = concept.exploration_level
        if existing:
            level = max(level, existing["exploration_level"])
        self.concepts[concept.name] = {
            "memory_id": existing["memory_id"] if existing else memory_id,
            "definition": concept.definition,
            "related_concepts": list(concept.related_concepts),
            "exploration_level": level,
        }

    async def upsert_procedural_pattern(self, memory_id, pattern: ProceduralPattern):
        existing = self.patterns.get(pattern.name)
        if existing:
            existing["effectiveness"] = (existing["effectiveness"] + pattern.effectiveness) / 2
            existing["usage_count"] += 1
        else:
            self.patterns[pattern.name] = {
                "memory_id": memory_id,
                "description": pattern.description,
                "effectiveness": pattern.effectiveness,
                "usage_count": 1,
            }

    async def search_memories_text(self, types, query, limit):
        needle = query.lower()
        hits = [
            m for _, m in self.memories.values()
            if m.type in types and needle in json.dumps(to_jsonable(m.content)).lower()
        ]
        hits.sort(key=lambda m: m.timestamp, reverse=True)
        return hits[:limit]

    async def fetch_memories(self, ids):
        return [self.memories[i][1] for i in ids if i in self.memories]

    async def delete_stale_episodic(self, run_id):
        cutoff = utcnow() - timedelta(hours=24)
        stale = [
            mid for mid, (rid, m) in self.memories.items()
            if rid == run_id and m.type == "episodic"
            and m.metadata.get("significance") == "low" and m.timestamp < cutoff
        ]
        for mid in stale:
            del self.memories[mid]
        return len(stale)

    async def touch_recent_procedural_patterns(self, run_id):
        return 0

    def add_memory(self, memory: Memory, run_id: str | None = None) -> Memory:
        self.memories[memory.id] = (run_id, memory)
        return memory


@pytest.fixture
def store() -> InMemoryDialogueStore:
    return InMemoryDialogueStore()


@pytest.fixture
def vectors() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def search() -> FakeSearch:
    return FakeSearch([
        SearchResult(
            title="Qualia - Stanford Encyclopedia",
            url="https://plato.stanford.edu/entries/qualia/",
            description="Qualia are the subjective qualities of conscious experience.",
        ),
    ])


@pytest.fixture
async def memory(store, vectors, provider) -> MemoryManager:
    manager = MemoryManager(store, vectors, provider, embedding_model="fake-embed", embedding_dim=4)
    await manager.initialize_collections()
    return manager


@pytest.fixture
def orchestrator(provider, memory, search) -> DialogueOrchestrator:
    return DialogueOrchestrator(
        providers={"questioner": provider, "explorer": provider},
        memory=memory,
        search=search,
        run_id="run-1",
    )


@pytest.fixture
def log_messages():
    """收集 loguru 输出的消息文本（含 DEBUG）。"""
    messages: list[str] = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)
