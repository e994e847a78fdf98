"""
Agent 核心模块 (agent)

模块职责：
    Questioner / Explorer 双角色对话的编排：
      - types.py        : 对话状态与记忆的数据模型
      - analysis.py     : 洞见提取、交换分类、置信度
      - context.py      : 提示词与种子状态
      - orchestrator.py : DialogueOrchestrator，一次执行一个 Agent 回合
      - tools/          : 四种对话工具与注册表

注意：本文件不做任何导入，memory 子系统会反向依赖 agent.types / agent.analysis，
请直接从子模块导入。
"""
