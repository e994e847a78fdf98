"""配置模块：Pydantic 配置模型与 JSON 配置文件的加载/保存。"""

from greflect.config.loader import get_config_path, load_config, save_config
from greflect.config.schema import Config

__all__ = ["Config", "load_config", "save_config", "get_config_path"]
