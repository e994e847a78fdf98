"""
配置加载工具模块 (config/loader.py)
=================================
本模块负责 greflect 配置文件的加载、保存和格式转换：
- 配置文件默认路径: ~/.greflect/config.json
- 配置文件使用 camelCase（驼峰命名），Python 内部使用 snake_case（下划线命名）
- 加载时自动将 camelCase → snake_case，保存时自动将 snake_case → camelCase

对于 Java 开发者：
- camelCase ↔ snake_case 转换类似于 Jackson 的 @JsonNaming 注解功能
"""

import json
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from greflect.config.schema import Config
from greflect.utils.helpers import get_data_path

# 这些字段的值是用户自定义的映射（如 HTTP 头），其内部键名原样保留
VERBATIM_KEYS = {"extra_headers"}


def get_config_path() -> Path:
    """获取默认配置文件路径: ~/.greflect/config.json"""
    return get_data_path() / "config.json"


def load_config(config_path: Path | None = None) -> Config:
    """
    从 JSON 文件加载配置，若文件不存在或损坏则返回默认配置。

    参数:
        config_path: 可选的配置文件路径。为 None 时使用默认路径。
    """
    path = config_path or get_config_path()

    if path.exists():
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            return Config.model_validate(convert_keys(data))
        except (json.JSONDecodeError, ValidationError, ValueError) as e:
            logger.warning(f"Failed to load config from {path}: {e}. Using default configuration.")

    return Config()


def save_config(config: Config, config_path: Path | None = None) -> Path:
    """将配置对象以 camelCase 键名保存为 JSON 文件，返回写入路径。"""
    path = config_path or get_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = convert_to_camel(config.model_dump())
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
    return path


def convert_keys(data: Any) -> Any:
    """
    递归地将字典中所有 camelCase 键名转换为 snake_case。

    示例: {"maxTokens": 8192} → {"max_tokens": 8192}
    """
    if isinstance(data, dict):
        converted = {}
        for k, v in data.items():
            key = camel_to_snake(k)
            converted[key] = v if key in VERBATIM_KEYS else convert_keys(v)
        return converted
    if isinstance(data, list):
        return [convert_keys(item) for item in data]
    return data


def convert_to_camel(data: Any) -> Any:
    """递归地将字典中所有 snake_case 键名转换为 camelCase。"""
    if isinstance(data, dict):
        return {
            snake_to_camel(k): v if k in VERBATIM_KEYS else convert_to_camel(v)
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [convert_to_camel(item) for item in data]
    return data


def camel_to_snake(name: str) -> str:
    """例: "maxTokens" → "max_tokens", "stepIntervalS" → "step_interval_s" """
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0:
            result.append("_")
        result.append(char.lower())
    return "".join(result)


def snake_to_camel(name: str) -> str:
    """例: "max_tokens" → "maxTokens", "step_interval_s" → "stepIntervalS" """
    components = name.split("_")
    return components[0] + "".join(x.title() for x in components[1:])
