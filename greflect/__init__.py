"""
greflect - 持续运行的双 Agent 哲学反思系统

模块概述：
    Questioner 与 Explorer 两个 Agent 轮流发言，围绕"意识"展开无限期的对话，
    并把每次交换沉淀为可检索的长期记忆。

    核心组件：
    - runner.LoopController         : 主循环（选择运行、恢复状态、定期快照）
    - agent.DialogueOrchestrator    : 执行单个 Agent 回合
    - memory.MemoryManager          : 情景 / 语义 / 程序 / 工作记忆
    - agent.tools.ToolRegistry      : 记忆检索、记忆综合、概念查询、网页搜索
"""

__version__ = "0.1.0"

__logo__ = "🪞"
