"""
CLI 命令模块 - greflect 的命令行入口。

命令：
- onboard：生成默认配置文件 ~/.greflect/config.json
- run    ：连接存储、组装各组件并启动持续运行的对话循环
- status ：查看配置与各提供商的密钥状态

技术栈：
- Typer：CLI 框架（基于 Click，支持类型注解自动生成帮助文档）
- Rich：终端美化输出（表格等）
"""

import asyncio
import signal
import sys

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from greflect import __logo__, __version__

app = typer.Typer(
    name="greflect",
    help=f"{__logo__} greflect - continuous two-agent reflection loop",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    """打印版本号并退出。"""
    if value:
        console.print(f"{__logo__} greflect v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """greflect CLI 根命令回调。"""
    pass


# ============================================================================
# Onboard
# ============================================================================


@app.command()
def onboard():
    """在 ~/.greflect/ 下创建默认配置文件。"""
    from greflect.config.loader import get_config_path, save_config
    from greflect.config.schema import Config

    config_path = get_config_path()
    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    save_config(Config(), config_path)
    console.print(f"[green]✓[/green] Created config at {config_path}")

    console.print(f"\n{__logo__} greflect is ready!")
    console.print("\nNext steps:")
    console.print("  1. Add your OpenAI and xAI keys to [cyan]~/.greflect/config.json[/cyan]")
    console.print("  2. Point [cyan]storage.postgresUrl[/cyan] and [cyan]storage.qdrantUrl[/cyan] at your services")
    console.print("  3. Start: [cyan]greflect run[/cyan]")


# ============================================================================
# Run
# ============================================================================


def _make_providers(config) -> dict:
    """
    为每个提供商名创建一个 LiteLLMProvider。

    questioner / explorer 所需的提供商都没有配置 API Key 时直接退出。
    """
    from greflect.providers.litellm_provider import LiteLLMProvider

    providers = {}
    for name in ("openai", "xai"):
        p = config.get_provider(name)
        providers[name] = LiteLLMProvider(
            api_key=p.api_key or None,
            api_base=p.api_base,
            default_model=config.agents.synthesis.model,
            extra_headers=p.extra_headers,
            embedding_model=config.memory.embedding_model,
        )

    missing = sorted({
        role.provider
        for role in (config.agents.questioner, config.agents.explorer)
        if not config.get_provider(role.provider).api_key
    })
    if missing:
        console.print(f"[red]Error: No API key configured for: {', '.join(missing)}[/red]")
        console.print("Set them in ~/.greflect/config.json under providers")
        raise typer.Exit(1)
    return providers


@app.command()
def run(
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging"),
):
    """
    启动持续运行的对话循环。

    执行流程：
    1. 加载配置，创建 LLM 提供者、Brave 搜索客户端
    2. 连接 PostgreSQL 与 Qdrant
    3. 组装 MemoryManager / DialogueOrchestrator / LoopController
    4. initialize() 后 start()，SIGINT / SIGTERM 触发 stop()
    """
    from greflect.agent.orchestrator import DialogueOrchestrator
    from greflect.config.loader import load_config
    from greflect.memory.manager import MemoryManager
    from greflect.providers.brave import BraveSearch
    from greflect.runner.controller import LoopController
    from greflect.store.postgres import PostgresDialogueStore
    from greflect.store.qdrant import QdrantVectorStore

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "INFO")

    config = load_config()
    providers = _make_providers(config)

    console.print(f"{__logo__} Starting greflect...")

    async def _run() -> None:
        store = PostgresDialogueStore(config.storage.postgres_url)
        vectors = QdrantVectorStore(config.storage.qdrant_url, api_key=config.storage.qdrant_api_key or None)
        await store.connect()

        synthesis = config.agents.synthesis
        memory = MemoryManager(
            store=store,
            vectors=vectors,
            provider=providers[config.memory.embedding_provider],
            embedding_model=config.memory.embedding_model,
            embedding_dim=config.memory.embedding_dim,
            score_threshold=config.memory.score_threshold,
            fallback_relevance=config.memory.fallback_relevance,
            synthesis_model=synthesis.model,
            synthesis_max_tokens=synthesis.max_tokens,
            synthesis_temperature=synthesis.temperature,
        )
        search_cfg = config.tools.web.search
        orchestrator = DialogueOrchestrator(
            providers={
                "questioner": providers[config.agents.questioner.provider],
                "explorer": providers[config.agents.explorer.provider],
            },
            memory=memory,
            search=BraveSearch(api_key=search_cfg.api_key or None),
            agents=config.agents,
            web_max_results=search_cfg.max_results,
        )
        controller = LoopController(
            store=store,
            memory=memory,
            orchestrator=orchestrator,
            provider=providers[synthesis.provider],
            loop=config.loop,
            snapshot_model=synthesis,
        )

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, controller.stop)
            except NotImplementedError:
                signal.signal(sig, lambda *_: controller.stop())

        try:
            run_id = await controller.initialize()
            console.print(f"[green]✓[/green] Run: {run_id}")
            await controller.start()
        finally:
            await vectors.close()
            await store.close()

    asyncio.run(_run())


# ============================================================================
# Status
# ============================================================================


@app.command()
def status():
    """显示配置文件、模型与各提供商密钥的配置状态。"""
    from greflect.config.loader import get_config_path, load_config

    config_path = get_config_path()
    config = load_config()

    console.print(f"{__logo__} greflect Status\n")
    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[red]✗[/red]'}")

    table = Table(title="Models")
    table.add_column("Role", style="cyan")
    table.add_column("Model")
    table.add_column("Provider")
    table.add_column("Key")
    for role in ("questioner", "explorer", "synthesis"):
        cfg = getattr(config.agents, role)
        has_key = bool(config.get_provider(cfg.provider).api_key)
        table.add_row(role, cfg.model, cfg.provider, "[green]✓[/green]" if has_key else "[dim]not set[/dim]")
    console.print(table)

    console.print(f"Embedding: {config.memory.embedding_model} ({config.memory.embedding_dim} dims)")
    console.print(f"PostgreSQL: {config.storage.postgres_url}")
    console.print(f"Qdrant: {config.storage.qdrant_url}")
    brave = bool(config.tools.web.search.api_key)
    console.print(f"Brave Search: {'[green]✓[/green]' if brave else '[dim]not set[/dim]'}")
    console.print(
        f"Loop: every {config.loop.step_interval_s}s, max depth {config.loop.max_depth}, "
        f"stop after {config.loop.max_consecutive_errors} consecutive errors"
    )


if __name__ == "__main__":
    app()
