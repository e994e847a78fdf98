"""
Brave 网页搜索客户端。

技术选型：
    - 搜索引擎：Brave Search API（需要 API Key）
    - HTTP 客户端：httpx（异步 HTTP 库，类似 Java 的 OkHttp）

约定：任何失败（未配置密钥、网络错误、非 2xx、响应格式异常）都返回空列表，
不向调用方抛出异常。
"""

import os
from dataclasses import dataclass

import httpx
from loguru import logger

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"


@dataclass
class SearchResult:
    """单条搜索结果。age 是页面发布时间（Brave 的 page_age 字段，可能缺失）。"""
    title: str
    url: str
    description: str
    age: str | None = None


class BraveSearch:
    """
    Brave Search API 客户端。

    参数:
        api_key: Brave Search API 密钥，None 时从环境变量 BRAVE_API_KEY 读取
        timeout: 请求超时秒数
    """

    def __init__(self, api_key: str | None = None, timeout: float = 10.0):
        self.api_key = api_key or os.environ.get("BRAVE_API_KEY", "")
        self.timeout = timeout

    async def search(self, query: str, count: int = 5) -> list[SearchResult]:
        """
        执行网页搜索，返回有序的搜索结果列表。

        参数:
            query: 搜索关键词
            count: 返回结果数量（钳制到 1-20）
        """
        if not self.api_key:
            logger.warning("Brave search skipped: BRAVE_API_KEY not configured")
            return []

        n = min(max(count, 1), 20)
        try:
            async with httpx.AsyncClient() as client:
                r = await client.get(
                    BRAVE_SEARCH_URL,
                    params={"q": query, "count": n},
                    headers={
                        "Accept": "application/json",
                        "Accept-Encoding": "gzip",
                        "X-Subscription-Token": self.api_key,
                    },
                    timeout=self.timeout,
                )
                r.raise_for_status()
            results = (r.json().get("web") or {}).get("results") or []
        except Exception as e:
            logger.error(f"Brave search error: {e}")
            return []

        return [
            SearchResult(
                title=item.get("title", ""),
                url=item.get("url", ""),
                description=item.get("description", ""),
                age=item.get("page_age"),
            )
            for item in results[:n]
        ]
