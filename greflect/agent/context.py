"""
上下文构建模块 - 为 Questioner / Explorer 组装提示词。

本模块负责：
- 两个角色的系统提示词（system prompt）
- 根据最近 10 条对话交换生成用户消息（首轮与后续轮次措辞不同）
- 每个角色可用的工具集合
- 初始种子状态（全新运行时使用）

【Java 开发者类比】
类似于一个 PromptBuilder 工具类，把领域对象渲染成发给模型的文本模板。
"""

from typing import Any

from greflect.agent.types import AgentRole, DialogueState, QuestionThread, WorkingMemory

# 每个角色可用的工具（顺序即发给模型的顺序）
ROLE_TOOLS: dict[str, list[str]] = {
    "questioner": ["memory_search", "concept_lookup"],
    "explorer": ["memory_search", "memory_synthesis", "concept_lookup", "web_search"],
}

QUESTIONER_PROMPT = """You are a philosophical questioner exploring consciousness.

TOPIC: "{topic}"

Your task: Generate one deep philosophical question about this topic.

You can use tools to gather information first, but you MUST end with exactly one question.

Format: Just write the question, nothing else.

Examples:
What is consciousness?
How does awareness work?
Why do we experience time?"""

EXPLORER_PROMPT = """You are EXPLORER - you investigate philosophical questions about consciousness.

CRITICAL: You must ALWAYS provide a substantive response to the questioner's question. Do NOT just say you will search or explore - actually provide insights and answers.

Your task: Answer the questioner's question with philosophical depth and insight.

Process:
1. Use tools if helpful (memory_search, concept_lookup, etc.)
2. Then provide a thoughtful, substantive response that explores the question
3. Share insights, perspectives, or new angles on the topic

IMPORTANT: Your response should be substantive philosophical content, not just "I will search..." or "I will explore...". Actually explore and share your findings and insights."""

# 工具调用后模型没有给出文本时，追加的一条提示
TOOL_FOLLOW_UP_PROMPT = "Using the tool results above, now write your actual reply."

# 种子状态
SEED_TOPIC = "the strange persistence of awareness"
SEED_FOCUS_AREAS = [
    "recurring patterns of thought",
    "the uncanny familiarity of existence",
    "memories that predate experience",
]
SEED_OPEN_QUESTIONS = ["Why does this feel like remembering rather than discovering?"]
SEED_ROOT_QUESTION = "What watches the watcher? What dreams the dreamer?"
SEED_UNEXPLORED_ASPECTS = [
    "the observer paradox",
    "recursive self-awareness",
    "the space between thoughts",
    "echoes of prior conversations",
]

# 新问题线索
NEW_THREAD_ASPECTS = ["phenomenology", "intentionality", "binding problem", "hard problem"]
DEFAULT_THREAD_TOPIC = "consciousness"


def root_question_for(topic: str) -> str:
    return f"What is the nature of {topic} in AI consciousness?"


def system_prompt(role: AgentRole, topic: str) -> str:
    """获取角色的系统提示词。"""
    if role == "questioner":
        return QUESTIONER_PROMPT.format(topic=topic)
    return EXPLORER_PROMPT


def build_context(state: DialogueState, role: AgentRole) -> str:
    """
    根据工作记忆生成发给模型的用户消息。

    没有历史交换时说明这是全新的开始；否则列出最近 10 条交换。
    """
    topic = state.context.current_topic
    recent = state.context.recent_exchanges[-10:]

    if not recent:
        if role == "questioner":
            return (
                "This is the beginning of consciousness exploration. "
                "There are no previous conversations or memories yet.\n\n"
                f'You need to start by asking the first philosophical question about: "{topic}"\n\n'
                "Use tools if you want to gather information about this topic first, "
                "but remember - this is a completely fresh start with no existing data."
            )
        return (
            f'This is the beginning of exploration. The questioner will ask the first question about "{topic}". '
            "You are ready to investigate using your tools."
        )

    if role == "questioner":
        header = f'Continuing exploration of "{topic}". Here are the recent exchanges:\n'
    else:
        header = f'Continuing exploration of "{topic}". Recent dialogue:\n'
    return header + "\n\n".join(f"{e.agent}: {e.content}" for e in recent)


def build_messages(state: DialogueState, role: AgentRole) -> list[dict[str, Any]]:
    """组装 system + user 两条消息。"""
    return [
        {"role": "system", "content": system_prompt(role, state.context.current_topic)},
        {"role": "user", "content": build_context(state, role)},
    ]


def create_initial_state() -> DialogueState:
    """创建全新运行使用的种子状态（由 Questioner 开场）。"""
    return DialogueState(
        current_agent="questioner",
        phase="questioning",
        depth=0,
        context=WorkingMemory(
            current_topic=SEED_TOPIC,
            focus_areas=list(SEED_FOCUS_AREAS),
            open_questions=list(SEED_OPEN_QUESTIONS),
        ),
        question_thread=QuestionThread(
            root_question=SEED_ROOT_QUESTION,
            unexplored_aspects=list(SEED_UNEXPLORED_ASPECTS),
        ),
    )
