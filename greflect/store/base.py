"""
存储层抽象接口。

greflect 依赖两个外部存储：
- DialogueStore : 关系存储（runs / dialogue_exchanges / dialogue_states / insights /
                  memories / semantic_concepts / procedural_patterns / identity_snapshots）
- VectorStore   : 向量相似度存储（episodic / semantic / procedural 三个集合）

核心组件只把它们当作"按键 upsert / 查询"的接口使用，不负责建表与迁移。
生产实现见 postgres.py（asyncpg）与 qdrant.py（qdrant-client）；
测试中使用 tests/conftest.py 里的内存实现。

类比 Java：相当于 Spring Data 的 Repository 接口，具体实现由 JDBC / 客户端 SDK 提供。
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from greflect.agent.types import (
    DialogueExchange,
    DialogueState,
    Insight,
    Memory,
    PhilosophicalConcept,
    ProceduralPattern,
)


@dataclass
class VectorMatch:
    """向量检索的一条命中结果。"""
    id: str
    score: float
    payload: dict[str, Any] = field(default_factory=dict)


class VectorStore(ABC):
    """向量相似度存储接口（集合统一使用余弦距离）。"""

    @abstractmethod
    async def list_collections(self) -> list[str]:
        """列出已存在的集合名。"""
        pass

    @abstractmethod
    async def create_collection(self, name: str, dimension: int) -> None:
        """创建集合（向量维度 dimension，余弦距离）。"""
        pass

    @abstractmethod
    async def upsert(self, collection: str, point_id: str, vector: list[float], payload: dict[str, Any]) -> None:
        """写入或覆盖一个向量点，返回前确保写入完成。"""
        pass

    @abstractmethod
    async def search(
        self,
        collection: str,
        vector: list[float],
        limit: int,
        score_threshold: float | None = None,
    ) -> list[VectorMatch]:
        """按相似度降序返回最多 limit 个命中。"""
        pass

    async def close(self) -> None:
        """释放连接（默认无操作）。"""
        return None


class DialogueStore(ABC):
    """
    关系存储接口。

    所有方法在底层失败时直接抛出异常，由调用方所在的组件边界决定如何处理。
    """

    # ========== 运行（runs） ==========

    @abstractmethod
    async def find_most_active_run(self) -> str | None:
        """返回对话交换最多的运行 ID；没有任何带交换的运行时返回 None。"""
        pass

    @abstractmethod
    async def create_run(self, goal: str, model: str) -> str:
        """创建一个 status='running' 的新运行并返回其 ID。"""
        pass

    @abstractmethod
    async def mark_run_running(self, run_id: str) -> None:
        """把运行重新标记为 running（清空 ended_at）。"""
        pass

    # ========== 对话状态 ==========

    @abstractmethod
    async def load_latest_dialogue_state(self, run_id: str) -> dict[str, Any] | None:
        """
        读取该运行最近更新的一行 dialogue_states。

        返回字典的键与列名一致（JSON 列已解码）：
        id, current_agent, phase, depth, current_topic, focus_areas, assumptions,
        contradictions, open_questions, question_thread, working_memory。
        """
        pass

    @abstractmethod
    async def save_dialogue_state(self, run_id: str, state: DialogueState) -> None:
        """按 state.id upsert 对话状态。"""
        pass

    # ========== 对话交换与洞见 ==========

    @abstractmethod
    async def insert_exchange(
        self,
        run_id: str,
        exchange: DialogueExchange,
        tools_used: list[str],
        confidence: float,
        tool_details: list[dict[str, Any]],
    ) -> None:
        pass

    @abstractmethod
    async def recent_exchanges(self, run_id: str, limit: int) -> list[dict[str, Any]]:
        """最近 limit 条交换，按时间正序（最旧在前）。"""
        pass

    @abstractmethod
    async def insert_insight(self, run_id: str, insight: Insight) -> None:
        pass

    @abstractmethod
    async def recent_insights(self, run_id: str, limit: int) -> list[Insight]:
        """最近 limit 条洞见，按时间正序（最旧在前）。"""
        pass

    # ========== 身份快照 ==========

    @abstractmethod
    async def latest_identity_snapshot(self, run_id: str) -> dict[str, Any] | None:
        pass

    @abstractmethod
    async def insert_identity_snapshot(self, run_id: str, iteration: int, identity: dict[str, Any]) -> None:
        pass

    # ========== 记忆 ==========

    @abstractmethod
    async def insert_memory(self, run_id: str | None, memory: Memory) -> None:
        """写入 memories 表（只追加）。"""
        pass

    @abstractmethod
    async def upsert_semantic_concept(self, memory_id: str, concept: PhilosophicalConcept) -> None:
        """
        按概念名 upsert。

        冲突时覆盖 definition / related_concepts，exploration_level 取新旧最大值。
        """
        pass

    @abstractmethod
    async def upsert_procedural_pattern(self, memory_id: str, pattern: ProceduralPattern) -> None:
        """
        按模式名 upsert。

        冲突时 effectiveness 取新旧平均值，usage_count 加一。
        """
        pass

    @abstractmethod
    async def search_memories_text(self, types: list[str], query: str, limit: int) -> list[Memory]:
        """对记忆内容做不区分大小写的子串匹配，按时间倒序返回。"""
        pass

    @abstractmethod
    async def fetch_memories(self, ids: list[str]) -> list[Memory]:
        """按 ID 读取记忆，不存在的 ID 直接跳过。"""
        pass

    @abstractmethod
    async def delete_stale_episodic(self, run_id: str) -> int:
        """删除该运行中 24 小时前、significance=low 的情景记忆，返回删除条数。"""
        pass

    @abstractmethod
    async def touch_recent_procedural_patterns(self, run_id: str) -> int:
        """刷新最近一小时内被记忆引用过的程序模式的 last_accessed，返回更新条数。"""
        pass

    async def close(self) -> None:
        """释放连接（默认无操作）。"""
        return None
