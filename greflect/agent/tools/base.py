"""
工具基类模块 (agent/tools/base.py)

模块职责：
    定义所有对话工具的抽象基类 Tool。
    工具集合是封闭的（ToolKind 四选一），每个工具都有强类型的参数与结果：
      - parameters   : JSON Schema，发给 LLM，同时用于 validate_params 校验
      - parse_params : 把校验过的原始字典转换为该工具的参数 dataclass
      - execute      : 接收参数 dataclass，返回结构化结果（不是字符串）

设计模式对比（Java 视角）：
    Tool 相当于 abstract class Tool<P, R>：
    - parse_params() 类似 Jackson 把 JSON 反序列化为 DTO
    - validate_params() 类似 javax.validation 的参数校验
    - to_schema() 输出 OpenAI Function Calling 需要的函数描述
"""

from abc import ABC, abstractmethod
from typing import Any, Literal

ToolKind = Literal["memory_search", "memory_synthesis", "concept_lookup", "web_search"]


class Tool(ABC):
    """
    对话工具的抽象基类。

    子类需要提供 name / description / parameters，并实现 parse_params() 与 execute()。
    """

    # JSON Schema 类型 -> Python 类型的映射表，用于参数校验
    _TYPE_MAP = {
        "string": str,
        "integer": int,
        "number": (int, float),
        "boolean": bool,
        "array": list,
        "object": dict,
    }

    @property
    @abstractmethod
    def name(self) -> ToolKind:
        """工具名称，用于 LLM function call 中的函数名标识。"""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """工具功能描述，LLM 据此判断何时调用该工具。"""
        pass

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """工具参数的 JSON Schema 定义。"""
        pass

    @abstractmethod
    def parse_params(self, params: dict[str, Any]) -> Any:
        """把已通过 schema 校验的参数字典转换为强类型参数对象。"""
        pass

    @abstractmethod
    async def execute(self, params: Any) -> Any:
        """
        执行工具的核心逻辑。

        返回结构化结果（dataclass 或其列表），由调用方负责序列化。
        """
        pass

    def validate_params(self, params: dict[str, Any]) -> list[str]:
        """
        根据 JSON Schema 校验工具参数。

        返回:
            错误信息列表，空列表表示校验通过。
        """
        if not isinstance(params, dict):
            return ["parameters should be object"]
        return self._validate(params, {**self.parameters, "type": "object"}, "")

    def _validate(self, val: Any, schema: dict[str, Any], path: str) -> list[str]:
        """递归校验单个值是否符合 JSON Schema 片段。"""
        t, label = schema.get("type"), path or "parameter"
        expected = self._TYPE_MAP.get(t)
        # bool 是 int 的子类，数值字段里要单独排除
        if expected and (not isinstance(val, expected) or (t in ("integer", "number") and isinstance(val, bool))):
            return [f"{label} should be {t}"]

        errors = []
        if "enum" in schema and val not in schema["enum"]:
            errors.append(f"{label} must be one of {schema['enum']}")
        if t in ("integer", "number"):
            if "minimum" in schema and val < schema["minimum"]:
                errors.append(f"{label} must be >= {schema['minimum']}")
            if "maximum" in schema and val > schema["maximum"]:
                errors.append(f"{label} must be <= {schema['maximum']}")
        if t == "string" and "minLength" in schema and len(val) < schema["minLength"]:
            errors.append(f"{label} must be at least {schema['minLength']} chars")
        if t == "object":
            props = schema.get("properties", {})
            for k in schema.get("required", []):
                if k not in val:
                    errors.append(f"missing required {path + '.' + k if path else k}")
            for k, v in val.items():
                if k in props:
                    errors.extend(self._validate(v, props[k], path + '.' + k if path else k))
        if t == "array" and "items" in schema:
            for i, item in enumerate(val):
                errors.extend(self._validate(item, schema["items"], f"{path}[{i}]" if path else f"[{i}]"))
        return errors

    def to_schema(self) -> dict[str, Any]:
        """将工具转换为 OpenAI Function Calling 格式的定义。"""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            }
        }
