"""
主循环控制器 (runner/controller.py) - 驱动持续运行的对话探索。

模块职责：
    1. initialize(): 选择或创建运行（交换最多的运行优先），恢复或播种对话状态
    2. start(): 无限循环，每次迭代执行恰好一个对话步骤
    3. stop(): 请求优雅停止（不会打断正在进行的模型调用）

每次迭代的策略：
    - depth ≥ max_depth 时开启新的问题线索
    - 停滞检测：步数是 stagnation_window 的倍数且 depth 仍为 0 时同样开启新线索
    - 执行一个步骤，持久化交换、对话状态与新洞见
    - 每 snapshot_every 步生成身份快照，每 summary_every 步输出会话摘要，
      每 status_every 步输出运行状态，cleanup_every > 0 时周期性清理记忆
    - 连续失败 max_consecutive_errors 次后停止；成功一次即清零

停止时只记录"会话暂停"摘要，运行永远不会被标记为 completed，可随时恢复。

【Java 开发者类比】
类似一个带熔断计数的 ScheduledExecutorService 任务，但整个循环是单协程、串行执行的。
"""

import asyncio
import random
import time
from typing import Any

from loguru import logger

from greflect.agent.context import (
    DEFAULT_THREAD_TOPIC,
    NEW_THREAD_ASPECTS,
    create_initial_state,
    root_question_for,
)
from greflect.agent.orchestrator import DialogueOrchestrator
from greflect.agent.types import SIGNIFICANCE_LEVELS, DialogueState, QuestionThread, StepOutcome
from greflect.config.schema import AgentModelConfig, LoopConfig
from greflect.memory.manager import MemoryManager
from greflect.providers.base import LLMProvider
from greflect.runner.identity import capture_identity_snapshot
from greflect.store.base import DialogueStore
from greflect.utils.helpers import truncate_string

RUN_GOAL = "Advanced multi-agent consciousness exploration using sophisticated dialogue"
RUN_MODEL = "GPT-5-nano + Grok-3-mini"

SUMMARY_INSIGHT_WINDOW = 20
PAUSE_INSIGHT_WINDOW = 50
NEW_THREAD_INSIGHT_WINDOW = 5


class LoopController:
    """
    主循环控制器，持有权威的 DialogueState。

    参数:
        store: 关系存储
        memory: 记忆管理器（初始化向量集合、可选清理）
        orchestrator: 对话编排器
        provider: 身份快照使用的 LLM 提供者
        loop: 循环配置
        snapshot_model: 身份快照使用的模型配置
    """

    def __init__(
        self,
        store: DialogueStore,
        memory: MemoryManager,
        orchestrator: DialogueOrchestrator,
        provider: LLMProvider,
        loop: LoopConfig | None = None,
        snapshot_model: AgentModelConfig | None = None,
    ):
        self.store = store
        self.memory = memory
        self.orchestrator = orchestrator
        self.provider = provider
        self.loop = loop or LoopConfig()
        self.snapshot_model = snapshot_model or AgentModelConfig(model=provider.get_default_model())

        self.run_id: str | None = None
        self.state: DialogueState = create_initial_state()
        self.step_count = 0
        self.consecutive_errors = 0

        self._running = False
        self._stop_event = asyncio.Event()
        self._started_at = time.monotonic()

    @property
    def is_running(self) -> bool:
        return self._running

    # ========== 初始化 ==========

    async def initialize(self) -> str:
        """
        解析运行并恢复状态，返回 run_id。

        存储不可达等错误直接抛出（致命）。
        """
        run_id = await self.store.find_most_active_run()
        if run_id:
            await self.store.mark_run_running(run_id)
            logger.info(f"Resuming run {run_id}")
        else:
            run_id = await self.store.create_run(RUN_GOAL, RUN_MODEL)
            logger.info(f"Created new run: {run_id}")

        self.run_id = run_id
        self.orchestrator.run_id = run_id

        await self.memory.initialize_collections()

        saved = await self.store.load_latest_dialogue_state(run_id)
        if saved:
            self.state = self._restore(saved)
            self.state.insights = await self.store.recent_insights(run_id, self.loop.max_insights)
            logger.info(
                f"Restored state at depth {self.state.depth}, topic: {self.state.context.current_topic} "
                f"({len(self.state.insights)} insights)"
            )
        else:
            logger.info("Creating initial dialogue state")
            self.state = create_initial_state()
            await self.store.save_dialogue_state(run_id, self.state)

        self._started_at = time.monotonic()
        return run_id

    def _restore(self, saved: dict[str, Any]) -> DialogueState:
        """把 dialogue_states 行转换为部分状态并交给编排器合并。"""
        context = dict(saved.get("working_memory") or {})
        context["current_topic"] = saved.get("current_topic") or context.get("current_topic")
        for key in ("focus_areas", "assumptions", "contradictions", "open_questions"):
            if saved.get(key) is not None:
                context[key] = saved[key]
        return self.orchestrator.restore_state({
            "id": saved.get("id"),
            "current_agent": saved.get("current_agent"),
            "phase": saved.get("phase"),
            "depth": saved.get("depth"),
            "context": context,
            "question_thread": saved.get("question_thread") or {},
        })

    # ========== 主循环 ==========

    async def start(self) -> None:
        """运行主循环，直到 stop() 被调用或连续错误达到阈值。"""
        if self.run_id is None:
            raise RuntimeError("LoopController.initialize() must be called before start()")
        if self._running:
            logger.warning("Loop is already running")
            return

        if self._stop_event.is_set():
            # stop() 在 start() 之前到达（例如初始化期间收到信号）
            logger.info("Stop requested before the loop started")
            self._stop_event.clear()
            self._log_pause_summary()
            return

        self._running = True
        logger.info("Starting continuous exploration...")

        while self._running:
            self.step_count += 1
            try:
                await self.run_iteration(self.step_count)
                self.consecutive_errors = 0
            except Exception as e:
                self.consecutive_errors += 1
                logger.exception(f"Error in exploration step {self.step_count}: {e}")
                if self.consecutive_errors >= self.loop.max_consecutive_errors:
                    logger.error(
                        f"Too many consecutive errors ({self.consecutive_errors}). Stopping session."
                    )
                    self._running = False
                    break
                logger.warning(
                    f"Continuing after error ({self.consecutive_errors}/{self.loop.max_consecutive_errors})..."
                )

            if self._running:
                await self._sleep(self.loop.step_interval_s)

        self._stop_event.clear()
        self._log_pause_summary()

    def stop(self) -> None:
        """请求停止。当前步骤会执行完毕后再退出循环。"""
        logger.info("Stopping exploration loop...")
        self._running = False
        self._stop_event.set()

    async def _sleep(self, seconds: float) -> None:
        """可被 stop() 打断的休眠。"""
        if seconds <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def run_iteration(self, step: int) -> StepOutcome:
        """执行一次完整迭代（含线索检查、持久化与周期性任务）。"""
        state = self.state
        logger.info(
            f"Step {step} | agent={state.current_agent} phase={state.phase} "
            f"depth={state.depth} topic={state.context.current_topic}"
        )

        if state.depth >= self.loop.max_depth:
            logger.info(f"Reached maximum exploration depth ({self.loop.max_depth}), starting new thread")
            self.start_new_question_thread()
        elif (
            step % self.loop.stagnation_window == 0
            and step > self.loop.stagnation_window
            and state.depth == 0
        ):
            logger.warning(f"Depth still 0 at step {step}, forcing topic refresh")
            self.start_new_question_thread()

        outcome = await self.orchestrator.step(self.state)
        self.state = outcome.state
        exchange = outcome.exchange
        logger.info(f"[{exchange.agent.upper()}] {truncate_string(exchange.content, 500)}")

        response = exchange.response
        await self.store.insert_exchange(
            self.run_id,
            exchange,
            tools_used=response.tools_used if response else [],
            confidence=response.confidence if response else 0.8,
            tool_details=(response.tool_details or []) if response else [],
        )
        await self.store.save_dialogue_state(self.run_id, self.state)

        for insight in outcome.new_insights:
            logger.info(f"New insight [{insight.significance}]: {insight.content}")
            await self.store.insert_insight(self.run_id, insight)

        if len(self.state.insights) > self.loop.max_insights:
            self.state.insights = self.state.insights[-self.loop.max_insights:]

        self._periodic(step)
        if self.loop.snapshot_every > 0 and step % self.loop.snapshot_every == 0:
            await capture_identity_snapshot(
                self.store, self.provider, self.snapshot_model, self.run_id, self.state, step
            )
        if self.loop.cleanup_every > 0 and step % self.loop.cleanup_every == 0:
            try:
                await self.memory.cleanup_memories(self.run_id)
            except Exception as e:
                logger.error(f"Memory cleanup failed: {e}")

        return outcome

    def _periodic(self, step: int) -> None:
        if self.loop.summary_every > 0 and step % self.loop.summary_every == 0:
            self.log_session_summary(step)
        if self.loop.status_every > 0 and step % self.loop.status_every == 0:
            logger.info(
                f"Continuous operation: step {step}, uptime {self._uptime_minutes()}min, depth {self.state.depth}"
            )

    # ========== 问题线索 ==========

    def start_new_question_thread(self) -> str:
        """
        开启新的问题线索并把 depth 归零，返回新的主题。

        有未探索方面时随机选一个作为主题，并重置线索（未探索方面换成固定池）；
        否则从最近洞见的相关概念中随机选择，都没有时使用默认主题。
        """
        state = self.state
        aspects = state.question_thread.unexplored_aspects
        if aspects:
            topic = random.choice(aspects)
            state.question_thread = QuestionThread(
                root_question=root_question_for(topic),
                unexplored_aspects=list(NEW_THREAD_ASPECTS),
            )
            logger.info(f"Starting new exploration thread: {topic}")
        else:
            concepts = [
                c for insight in state.insights[-NEW_THREAD_INSIGHT_WINDOW:] for c in insight.related_concepts
            ]
            topic = random.choice(concepts) if concepts else DEFAULT_THREAD_TOPIC
            logger.info(f"Generated new exploration focus: {topic}")

        state.context.current_topic = topic
        state.depth = 0
        return topic

    # ========== 日志 ==========

    def _uptime_minutes(self) -> int:
        return int((time.monotonic() - self._started_at) // 60)

    def _significance_counts(self, window: int) -> dict[str, int]:
        counts = dict.fromkeys(SIGNIFICANCE_LEVELS, 0)
        for insight in self.state.insights[-window:]:
            counts[insight.significance] = counts.get(insight.significance, 0) + 1
        return counts

    def log_session_summary(self, step: int) -> None:
        """输出会话摘要（只写日志，不修改状态）。"""
        insights = self.state.insights[-SUMMARY_INSIGHT_WINDOW:]
        counts = self._significance_counts(SUMMARY_INSIGHT_WINDOW)
        logger.info(
            f"Session summary (step {step}): uptime {self._uptime_minutes()}min, "
            f"depth {self.state.depth}, insights {len(insights)} "
            f"(breakthrough {counts['breakthrough']}, high {counts['high']}, "
            f"medium {counts['medium']}, low {counts['low']}), "
            f"focus: {self.state.context.current_topic}, "
            f"open questions: {len(self.state.context.open_questions)}"
        )
        for insight in [i for i in insights if i.significance == "breakthrough"][-2:]:
            logger.info(f"  Breakthrough: {insight.content}")

    def _log_pause_summary(self) -> None:
        counts = self._significance_counts(PAUSE_INSIGHT_WINDOW)
        logger.info(
            f"Session paused (resumable): duration {self._uptime_minutes()}min, "
            f"steps {self.step_count}, insights {len(self.state.insights[-PAUSE_INSIGHT_WINDOW:])}, "
            f"breakthroughs {counts.get('breakthrough', 0)}, depth {self.state.depth}, run {self.run_id}"
        )
