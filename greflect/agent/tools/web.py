"""
网页搜索工具 (web_search)，只对探索者（Explorer）开放。

底层是 BraveSearch 客户端，失败时返回空列表。
"""

from dataclasses import dataclass
from typing import Any

from greflect.agent.tools.base import Tool
from greflect.providers.brave import BraveSearch, SearchResult


@dataclass
class WebSearchParams:
    query: str
    count: int = 5


class WebSearchTool(Tool):
    """通过 Brave Search 搜索网页，返回标题、URL 与摘要。"""

    name = "web_search"
    description = "Search the web for philosophical concepts, theories, or relevant information"
    parameters = {
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "Search query for web search", "minLength": 1},
            "count": {"type": "number", "description": "Results (1-10)", "minimum": 1, "maximum": 10},
        },
        "required": ["query"],
    }

    def __init__(self, search: BraveSearch, max_results: int = 5):
        self.search = search
        self.max_results = max_results

    def parse_params(self, params: dict[str, Any]) -> WebSearchParams:
        return WebSearchParams(
            query=params["query"],
            count=int(params.get("count") or self.max_results),
        )

    async def execute(self, params: WebSearchParams) -> list[SearchResult]:
        return await self.search.search(params.query, params.count)
