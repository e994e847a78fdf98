"""存储层：关系存储（PostgreSQL）与向量存储（Qdrant）。"""

from greflect.store.base import DialogueStore, VectorMatch, VectorStore

__all__ = ["DialogueStore", "VectorStore", "VectorMatch"]
