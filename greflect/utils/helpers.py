"""
工具函数集合 - greflect 项目全局通用的辅助函数。

本模块提供路径管理、ID 生成、时间戳、JSON 解析等基础工具函数，
被项目中的多个模块引用。

函数分类：
- 路径管理：ensure_dir, get_data_path
- 标识与时间：new_id, utcnow
- 字符串工具：truncate_string, strip_code_fence
- 解析工具：parse_json_payload（返回 JsonParseResult，由调用方决定默认值）
- 序列化工具：to_jsonable（dataclass / datetime → JSON 可序列化结构）
"""

import dataclasses
import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any


def ensure_dir(path: Path) -> Path:
    """
    确保目录存在，不存在则递归创建。

    参数:
        path: 目标目录路径

    返回:
        创建后的目录路径（原样返回）
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """获取 greflect 数据目录（~/.greflect）。自动创建不存在的目录。"""
    return ensure_dir(Path.home() / ".greflect")


def new_id() -> str:
    """生成全局唯一的 UUID4 字符串（向量库与关系库共用的主键格式）。"""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """获取带时区（UTC）的当前时间。"""
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """
    将任意时间表示解析为带时区的 datetime。

    支持 datetime 对象与 ISO 8601 字符串；无法解析时返回当前时间。
    没有时区信息的时间按 UTC 处理。
    """
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, str) and value:
        try:
            ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return utcnow()
    else:
        return utcnow()
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def truncate_string(s: str, max_len: int = 100, suffix: str = "...") -> str:
    """
    截断字符串到指定最大长度，超出时添加后缀。

    参数:
        s: 原始字符串
        max_len: 最大长度（包含后缀），默认 100
        suffix: 截断后缀，默认 "..."
    """
    if len(s) <= max_len:
        return s
    return s[: max_len - len(suffix)] + suffix


def strip_code_fence(text: str) -> str:
    """去掉 LLM 输出中可能包裹的 ``` 代码块标记。"""
    text = (text or "").strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[-1].rsplit("```", 1)[0].strip()
    return text


@dataclass
class JsonParseResult:
    """
    JSON 解析结果（成功值或失败原因二选一）。

    LLM 返回的 JSON 经常不合法，调用方根据 ok 自行决定使用什么默认值，
    而不是在解析函数内部偷偷兜底。

    属性:
        value: 解析成功时的值
        error: 解析失败的原因（"empty" / "invalid_json" / "unexpected_type: ..."）
    """
    value: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def parse_json_payload(text: str | None, expect: type | None = None) -> JsonParseResult:
    """
    解析模型返回的 JSON 文本。

    参数:
        text: 原始文本（允许被 ``` 代码块包裹）
        expect: 期望的顶层类型（如 list、dict），类型不符视为失败

    返回:
        JsonParseResult
    """
    cleaned = strip_code_fence(text or "")
    if not cleaned:
        return JsonParseResult(error="empty")
    try:
        value = json.loads(cleaned)
    except json.JSONDecodeError as e:
        return JsonParseResult(error=f"invalid_json: {e.msg}")
    if expect is not None and not isinstance(value, expect):
        return JsonParseResult(error=f"unexpected_type: {type(value).__name__}")
    return JsonParseResult(value=value)


def to_jsonable(obj: Any) -> Any:
    """
    递归地把 dataclass、datetime、Enum、set 等转换为 JSON 可序列化结构。

    用于把工具结果、AgentResponse 等写入关系库的 JSONB 列。
    """
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: to_jsonable(getattr(obj, f.name)) for f in dataclasses.fields(obj)}
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, dict):
        return {str(k): to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set, frozenset)):
        return [to_jsonable(v) for v in obj]
    return obj
