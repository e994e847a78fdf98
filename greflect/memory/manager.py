"""
记忆管理器 - 四类记忆的存储、检索与综合。

【记忆类型】
- episodic  （情景记忆）：一次具体的对话交换及其重要程度
- semantic  （语义记忆）：有名字、有定义的哲学概念
- procedural（程序记忆）：命名的策略模式，带有效性分数，随使用不断强化
- working   （工作记忆）：只存在于 DialogueState.context 中，不落库

【存储分工】
- 关系库（DialogueStore）是权威存储，写入失败直接抛出
- 向量库（VectorStore）只用于相似度检索，任何失败都只记录日志，不回滚关系库写入

【检索流程】
  query → embed → 逐类型相似度搜索（带分数阈值）→ 上下文重排 → 取前 limit
                                         └─ 结果为空 → 关系库子串匹配兜底

【Java 开发者类比】
相当于一个 Service 层，同时编排 JPA Repository（关系库）与 Elasticsearch（向量库）。
"""

import json
import math
from typing import Any

from loguru import logger

from greflect.agent.analysis import extract_tags
from greflect.agent.types import (
    VECTOR_MEMORY_TYPES,
    DialogueExchange,
    Insight,
    Memory,
    PhilosophicalConcept,
    ProceduralPattern,
    SIGNIFICANCE_LEVELS,
    Significance,
    WorkingMemory,
)
from greflect.memory.relevance import rerank
from greflect.providers.base import LLMProvider
from greflect.store.base import DialogueStore, VectorMatch, VectorStore
from greflect.utils.helpers import new_id, parse_json_payload, parse_timestamp, to_jsonable

SYNTHESIS_PROMPT = """You are a sophisticated memory synthesis system. Given these related memories and current context, identify patterns, connections, and potential insights.

Memories:
{memories}

Current Context:
Topic: {topic}
Focus Areas: {focus_areas}
Recent Insights: {recent}

Identify:
1. Patterns across these memories
2. Contradictions or tensions
3. Emerging themes
4. Novel connections
5. Potential breakthrough insights

Respond with ONLY a JSON array of insights, each with: content, significance (low/medium/high/breakthrough), relatedConcepts, verified."""


class MemoryManager:
    """
    记忆管理器。

    参数:
        store: 关系存储
        vectors: 向量存储
        provider: 提供 embed() 与综合所用 chat() 的 LLM 提供者
        embedding_model: 嵌入模型名
        embedding_dim: 向量维度（创建集合时使用）
        score_threshold: 相似度搜索的最低分数
        fallback_relevance: 子串兜底结果统一使用的相关度
        synthesis_model: 记忆综合使用的模型
    """

    def __init__(
        self,
        store: DialogueStore,
        vectors: VectorStore,
        provider: LLMProvider,
        embedding_model: str | None = None,
        embedding_dim: int = 1536,
        score_threshold: float = 0.1,
        fallback_relevance: float = 0.5,
        synthesis_model: str | None = None,
        synthesis_max_tokens: int = 4096,
        synthesis_temperature: float = 1.0,
    ):
        self.store = store
        self.vectors = vectors
        self.provider = provider
        self.embedding_model = embedding_model
        self.embedding_dim = embedding_dim
        self.score_threshold = score_threshold
        self.fallback_relevance = fallback_relevance
        self.synthesis_model = synthesis_model
        self.synthesis_max_tokens = synthesis_max_tokens
        self.synthesis_temperature = synthesis_temperature

    # ========== 初始化 ==========

    async def initialize_collections(self) -> None:
        """
        确保三个向量集合存在（幂等）。

        创建失败只记录日志；之后针对缺失集合的操作会在调用处失败并被捕获。
        """
        for name in VECTOR_MEMORY_TYPES:
            try:
                existing = await self.vectors.list_collections()
                if name in existing:
                    logger.debug(f"Vector collection '{name}' already exists")
                    continue
                logger.info(f"Creating vector collection: {name}")
                await self.vectors.create_collection(name, self.embedding_dim)
            except Exception as e:
                logger.error(f"Error initializing vector collection '{name}': {e}")

    async def _embed(self, text: str) -> list[float]:
        return await self.provider.embed(text, model=self.embedding_model)

    async def _index(self, collection: str, point_id: str, text: str, payload: dict[str, Any]) -> bool:
        """嵌入并写入向量库；失败返回 False，不抛出。"""
        try:
            vector = await self._embed(text)
            if not vector:
                logger.warning(f"Empty embedding for {collection} memory {point_id}; stored in SQL only")
                return False
            await self.vectors.upsert(collection, point_id, vector, payload)
        except Exception as e:
            logger.error(f"Error storing {collection} memory {point_id} in vector store: {e}")
            return False
        logger.debug(f"Stored {collection} memory in vector store: {point_id}")
        return True

    # ========== 写入 ==========

    async def store_episodic_memory(
        self,
        run_id: str,
        exchange: DialogueExchange,
        significance: Significance,
    ) -> Memory:
        """
        保存情景记忆。

        关系库写入始终执行；significance 不为 low 时额外写入 episodic 向量集合。
        """
        memory = Memory(
            id=new_id(),
            type="episodic",
            content={
                "exchange": exchange.to_dict(include_response=False),
                "significance": significance,
                "context": list(exchange.related_memories),
            },
            tags=extract_tags(exchange.content),
            metadata={
                "run_id": run_id,
                "agent": exchange.agent,
                "depth": exchange.depth,
                "significance": significance,
                "related_memories": list(exchange.related_memories),
            },
        )
        await self.store.insert_memory(run_id, memory)

        if significance != "low":
            await self._index("episodic", memory.id, exchange.content, {
                "run_id": run_id,
                "agent": exchange.agent,
                "significance": significance,
                "depth": exchange.depth,
                "content": exchange.content,
                "tags": memory.tags,
                "timestamp": memory.timestamp.isoformat(),
            })
        return memory

    async def store_semantic_memory(self, concept: PhilosophicalConcept, source: str) -> Memory:
        """
        保存语义记忆（哲学概念）。

        关系库按概念名 upsert，exploration_level 取最大值；
        向量库以 "{name}: {definition}" 作为嵌入文本。
        """
        memory = Memory(
            id=new_id(),
            type="semantic",
            content=to_jsonable(concept),
            tags=[concept.name, *concept.related_concepts],
            metadata={
                "source": source,
                "exploration_level": concept.exploration_level,
                "verified": source == "searched",
            },
        )
        await self.store.upsert_semantic_concept(memory.id, concept)

        await self._index("semantic", memory.id, f"{concept.name}: {concept.definition}", {
            "name": concept.name,
            "definition": concept.definition,
            "exploration_level": concept.exploration_level,
            "source": source,
            "tags": memory.tags,
            "timestamp": memory.timestamp.isoformat(),
        })
        return memory

    async def store_procedural_memory(self, pattern: ProceduralPattern) -> Memory:
        """
        保存程序记忆（策略模式）。

        关系库按模式名 upsert：冲突时 effectiveness 取平均、usage_count 加一。
        """
        memory = Memory(
            id=new_id(),
            type="procedural",
            content=to_jsonable(pattern),
            tags=[pattern.name, "strategy", "pattern"],
            metadata={"effectiveness": pattern.effectiveness, "usage_count": 0},
        )
        await self.store.upsert_procedural_pattern(memory.id, pattern)

        await self._index("procedural", memory.id, f"{pattern.name}: {pattern.description}", {
            "name": pattern.name,
            "description": pattern.description,
            "effectiveness": pattern.effectiveness,
            "tags": memory.tags,
            "timestamp": memory.timestamp.isoformat(),
        })
        return memory

    # ========== 检索 ==========

    async def retrieve_relevant_memories(
        self,
        query: str,
        context: WorkingMemory,
        types: list[str] | None = None,
        limit: int = 10,
    ) -> list[Memory]:
        """
        语义检索 + 上下文重排，必要时子串兜底。

        参数:
            query: 查询文本
            context: 当前工作记忆（用于重排）
            types: 记忆类型（只保留三种向量类型；默认全部）
            limit: 最多返回条数

        返回:
            Memory 列表（带 relevance_score）。嵌入失败时返回空列表，不走兜底。
        """
        requested = list(types) if types else list(VECTOR_MEMORY_TYPES)
        searchable = [t for t in dict.fromkeys(requested) if t in VECTOR_MEMORY_TYPES]
        skipped = [t for t in requested if t not in VECTOR_MEMORY_TYPES]
        if skipped:
            logger.debug(f"Skipping non-vector memory types: {skipped}")
        if not searchable or limit <= 0:
            return []

        logger.info(f"Memory search: '{query}' in {searchable}")
        try:
            vector = await self._embed(query)
        except Exception as e:
            logger.error(f"Embedding failed for memory search '{query}': {e}")
            return []
        if not vector:
            logger.error(f"Empty embedding for memory search '{query}'")
            return []

        per_type = math.ceil(limit / len(searchable))
        candidates: list[Memory] = []
        for memory_type in searchable:
            try:
                matches = await self.vectors.search(memory_type, vector, per_type, self.score_threshold)
            except Exception as e:
                logger.error(f"Error searching {memory_type} memories: {e}")
                continue
            logger.info(f"Found {len(matches)} results in {memory_type} collection")
            candidates.extend(self._match_to_memory(memory_type, m) for m in matches)

        results = rerank(candidates, context, limit)
        if results:
            logger.info(f"Returning {len(results)} memories")
            return results

        logger.info("No results from vector search, trying SQL fallback")
        try:
            results = await self.store.search_memories_text(searchable, query, limit)
        except Exception as e:
            logger.error(f"SQL fallback failed: {e}")
            return []
        for memory in results:
            memory.relevance_score = self.fallback_relevance
        logger.info(f"SQL fallback found {len(results)} results")
        return results

    @staticmethod
    def _match_to_memory(memory_type: str, match: VectorMatch) -> Memory:
        payload = match.payload or {}
        tags = payload.get("tags")
        return Memory(
            id=match.id,
            type=memory_type,
            content=payload.get("content") or payload,
            timestamp=parse_timestamp(payload.get("timestamp")),
            tags=list(tags) if isinstance(tags, list) else [],
            metadata=dict(payload),
            relevance_score=match.score,
        )

    async def get_memories(self, ids: list[str]) -> list[Memory]:
        """按 ID 从关系库读取记忆，未知 ID 跳过。"""
        wanted = [i for i in dict.fromkeys(ids) if isinstance(i, str) and i]
        if not wanted:
            return []
        return await self.store.fetch_memories(wanted)

    # ========== 综合 ==========

    async def synthesize_memories(self, memories: list[Memory], context: WorkingMemory) -> list[Insight]:
        """
        让模型从一组记忆中归纳模式、矛盾与候选洞见。

        模型应返回 JSON 数组；解析失败或调用失败时返回空列表。
        """
        if not memories:
            return []

        prompt = SYNTHESIS_PROMPT.format(
            memories="\n\n".join(
                f"[{m.type}] {json.dumps(to_jsonable(m.content), ensure_ascii=False)}" for m in memories
            ),
            topic=context.current_topic,
            focus_areas=", ".join(context.focus_areas),
            recent=" | ".join(e.content for e in context.recent_exchanges[-3:]),
        )
        response = await self.provider.chat(
            messages=[{"role": "user", "content": prompt}],
            model=self.synthesis_model,
            max_tokens=self.synthesis_max_tokens,
            temperature=self.synthesis_temperature,
        )
        if response.is_error:
            logger.error(f"Memory synthesis call failed: {response.content}")
            return []

        parsed = parse_json_payload(response.content, expect=list)
        if not parsed.ok:
            logger.warning(f"Could not parse synthesis response ({parsed.error})")
            return []

        insights: list[Insight] = []
        for item in parsed.value:
            if not isinstance(item, dict) or not str(item.get("content") or "").strip():
                continue
            significance = item.get("significance")
            concepts = item.get("relatedConcepts") or item.get("related_concepts") or []
            insights.append(Insight(
                content=str(item["content"]).strip(),
                significance=significance if significance in SIGNIFICANCE_LEVELS else "medium",
                related_concepts=[str(c) for c in concepts] if isinstance(concepts, list) else [],
                generated_by="synthesis",
                verified=False,
            ))
        logger.info(f"Memory synthesis produced {len(insights)} insights from {len(memories)} memories")
        return insights

    # ========== 维护 ==========

    async def cleanup_memories(self, run_id: str) -> None:
        """删除过期的低重要度情景记忆，并刷新最近被引用的程序模式的访问时间。"""
        deleted = await self.store.delete_stale_episodic(run_id)
        touched = await self.store.touch_recent_procedural_patterns(run_id)
        logger.info(f"Memory cleanup: removed {deleted} episodic, touched {touched} patterns")
