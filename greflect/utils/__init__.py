"""
工具函数模块 - greflect 全局通用的辅助函数。

本模块包含：
- ensure_dir / get_data_path：目录与数据路径
- new_id / utcnow / parse_timestamp：ID 与时间
- parse_json_payload / JsonParseResult：模型返回 JSON 的解析
- to_jsonable：dataclass 等对象到 JSON 结构的转换
"""

from greflect.utils.helpers import (
    JsonParseResult,
    ensure_dir,
    get_data_path,
    new_id,
    parse_json_payload,
    to_jsonable,
    utcnow,
)

__all__ = [
    "ensure_dir",
    "get_data_path",
    "new_id",
    "utcnow",
    "JsonParseResult",
    "parse_json_payload",
    "to_jsonable",
]
