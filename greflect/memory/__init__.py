"""记忆子系统：MemoryManager 与上下文重排。"""

from greflect.memory.manager import MemoryManager
from greflect.memory.relevance import contextual_relevance

__all__ = ["MemoryManager", "contextual_relevance"]
