"""
概念查询工具 (concept_lookup)。

通过网页搜索获取哲学概念的定义，并作为语义记忆（source="searched"）保存。
搜索异常时仍返回并保存一个兜底概念，保证 LLM 总能拿到结构化结果。
"""

from dataclasses import dataclass
from typing import Any

from loguru import logger

from greflect.agent.analysis import extract_related_concepts
from greflect.agent.tools.base import Tool
from greflect.agent.types import PhilosophicalConcept
from greflect.memory.manager import MemoryManager
from greflect.providers.brave import BraveSearch
from greflect.utils.helpers import to_jsonable


@dataclass
class ConceptLookupParams:
    concept: str


class ConceptLookupTool(Tool):
    """查询哲学概念的定义与关联概念。"""

    name = "concept_lookup"
    description = "Look up definitions and relationships of philosophical concepts"
    parameters = {
        "type": "object",
        "properties": {
            "concept": {"type": "string", "description": "Philosophical concept to look up", "minLength": 1},
        },
        "required": ["concept"],
    }

    def __init__(self, search: BraveSearch, manager: MemoryManager, max_results: int = 5):
        self.search = search
        self.manager = manager
        self.max_results = max_results

    def parse_params(self, params: dict[str, Any]) -> ConceptLookupParams:
        return ConceptLookupParams(concept=params["concept"].strip())

    async def execute(self, params: ConceptLookupParams) -> PhilosophicalConcept:
        try:
            results = await self.search.search(
                f"philosophy {params.concept} definition meaning", self.max_results
            )
            concept = PhilosophicalConcept(
                name=params.concept,
                definition=results[0].description if results else "Definition not found",
                related_concepts=extract_related_concepts(to_jsonable(results)),
                sources=[r.url for r in results if r.url],
                exploration_level=1,
            )
        except Exception as e:
            logger.error(f"concept_lookup failed for '{params.concept}': {e}")
            concept = PhilosophicalConcept(
                name=params.concept,
                definition=f"Definition unavailable due to search error: {e}",
                related_concepts=[params.concept],
                sources=[],
                exploration_level=1,
            )

        await self.manager.store_semantic_memory(concept, "searched")
        return concept
