"""
运行器模块 - 持续运行的主循环与身份快照。

本模块提供 LoopController：选择或创建运行、恢复状态，
然后一步一步地驱动 DialogueOrchestrator。
"""

from greflect.runner.controller import LoopController

__all__ = ["LoopController"]
