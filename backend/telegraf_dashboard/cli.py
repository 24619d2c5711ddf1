"""
Telegraf Dashboard 命令行入口模块。

提供 CLI 命令：serve（启动 HTTP 服务）和 check（验证遥测库连通性）。
"""
import asyncio
import logging
import sys

import click

from telegraf_dashboard import __version__
from telegraf_dashboard.core.config import settings


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx, verbose):
    """Telegraf Dashboard - 主机遥测概览服务。"""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@cli.command()
@click.option("--host", default=None, help="Bind address (default: API_HOST)")
@click.option("--port", type=int, default=None, help="Bind port (default: API_PORT)")
@click.pass_context
def serve(ctx, host, port):
    """以前台模式运行 HTTP 服务。"""
    import uvicorn

    logger = logging.getLogger("telegraf-dashboard")
    host = host or settings.api_host
    port = port or settings.api_port
    logger.info(f"Starting Telegraf Dashboard v{__version__} on {host}:{port}")

    uvicorn.run(
        "telegraf_dashboard.main:app",
        host=host,
        port=port,
        log_level="debug" if ctx.obj["verbose"] else settings.log_level.lower(),
    )


@cli.command()
def check():
    """验证遥测库连接并输出连接池状态。"""
    from telegraf_dashboard.core.database import store
    from telegraf_dashboard.core.exceptions import StoreUnavailableError

    async def _check():
        try:
            await store.ping()
            return store.pool_status()
        finally:
            await store.close()

    try:
        pool = asyncio.run(_check())
    except StoreUnavailableError as e:
        click.echo(f"❌ Database error: {e.message}", err=True)
        if e.code:
            click.echo(f"   Code: {e.code}", err=True)
        sys.exit(1)

    click.echo(f"✅ Database OK: {store.engine.url.render_as_string(hide_password=True)}")
    click.echo(f"   Connections: {pool.total_connections} (idle {pool.idle_connections})")
    click.echo(f"   Waiting requests: {pool.waiting_requests}")


def main():
    """CLI 入口函数。"""
    cli()


if __name__ == "__main__":
    main()
