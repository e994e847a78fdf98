"""
基于 qdrant-client 的向量存储实现。

每种向量记忆类型（episodic / semantic / procedural）对应一个同名集合，
点 ID 与关系库中的记忆 ID 相同（UUID 字符串）。
"""

from typing import Any

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import Distance, PointStruct, VectorParams

from greflect.store.base import VectorMatch, VectorStore


class QdrantVectorStore(VectorStore):
    """
    Qdrant 向量存储。

    参数:
        url: Qdrant 服务地址，如 http://localhost:6333
        api_key: 可选的 API Key（Qdrant Cloud）
    """

    def __init__(self, url: str, api_key: str | None = None, timeout: int = 30):
        self.client = AsyncQdrantClient(url=url, api_key=api_key or None, timeout=timeout)

    async def list_collections(self) -> list[str]:
        response = await self.client.get_collections()
        return [c.name for c in response.collections]

    async def create_collection(self, name: str, dimension: int) -> None:
        await self.client.create_collection(
            collection_name=name,
            vectors_config=VectorParams(size=dimension, distance=Distance.COSINE),
        )

    async def upsert(self, collection: str, point_id: str, vector: list[float], payload: dict[str, Any]) -> None:
        await self.client.upsert(
            collection_name=collection,
            points=[PointStruct(id=point_id, vector=vector, payload=payload)],
            wait=True,
        )

    async def search(
        self,
        collection: str,
        vector: list[float],
        limit: int,
        score_threshold: float | None = None,
    ) -> list[VectorMatch]:
        response = await self.client.query_points(
            collection_name=collection,
            query=vector,
            limit=limit,
            score_threshold=score_threshold,
            with_payload=True,
        )
        return [
            VectorMatch(id=str(p.id), score=float(p.score), payload=dict(p.payload or {}))
            for p in response.points
        ]

    async def close(self) -> None:
        await self.client.close()
