#!/usr/bin/env python3
"""
smokedriver - launch an application under test and drive it with Playwright.
"""
import asyncio
import tempfile

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from smokedriver import __version__
from smokedriver.logging_config import setup_logging

console = Console()

BROWSER_CHOICES = ["chromium", "firefox", "webkit"]


@click.group()
@click.version_option(version=__version__, prog_name="smokedriver")
@click.option("--log-level", default=None, help="Log level (defaults to SMOKEDRIVER_LOG_LEVEL or INFO)")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
def cli(log_level: str, json_logs: bool):
    """smokedriver - Playwright bridge for end-to-end smoke tests"""
    setup_logging(level=log_level, json_format=json_logs or None)


def agent_folder():
    """Per-command agent folder, removed when the command finishes."""
    return tempfile.TemporaryDirectory(prefix="smokedriver-agent-", ignore_cleanup_errors=True)


def _server_options(agent_dir: str, workspace: str, extensions_dir: str, server_path: str, root: str, verbose: bool):
    from smokedriver.automation import ServerOptions

    options = ServerOptions(
        user_data_dir=agent_dir,
        workspace_path=workspace,
        extensions_path=extensions_dir,
        verbose=verbose,
    )
    if server_path:
        options.server_path = server_path
    if root:
        options.root = root
    return options


def server_options(func):
    func = click.option("--verbose", "-v", is_flag=True, help="Log server output")(func)
    func = click.option("--root", default=None, help="Application checkout (defaults to cwd)")(func)
    func = click.option("--server-path", default=None, help="Pre-built server (defaults to VSCODE_REMOTE_SERVER_PATH)")(func)
    func = click.option("--extensions-dir", required=True, type=click.Path(file_okay=False), help="Extensions directory")(func)
    func = click.argument("workspace", type=click.Path(exists=True, file_okay=False))(func)
    return func


@cli.command()
@server_options
def serve(workspace: str, extensions_dir: str, server_path: str, root: str, verbose: bool):
    """Start the web server and keep it running until Ctrl+C"""
    with agent_folder() as agent_dir:
        options = _server_options(agent_dir, workspace, extensions_dir, server_path, root, verbose)
        try:
            asyncio.run(_serve(options))
        except KeyboardInterrupt:
            console.print("\n[dim]Stopped[/dim]")


async def _serve(options):
    from smokedriver.automation import AutomationSession

    async with AutomationSession() as session:
        await session.connect_server(options)
        console.print(Panel.fit(
            f"[bold cyan]Web UI available at[/bold cyan] {session.endpoint}\n"
            "[dim]Press Ctrl+C to stop[/dim]",
            border_style="cyan"
        ))
        await session.server.process.wait()
        console.print("[yellow]Server exited[/yellow]")


@cli.command()
@server_options
@click.option("--browser", "browser_name", type=click.Choice(BROWSER_CHOICES), default="chromium", help="Browser to drive")
@click.option("--headless", is_flag=True, help="Run the browser headless")
def smoke(workspace: str, extensions_dir: str, server_path: str, root: str, verbose: bool, browser_name: str, headless: bool):
    """Open the web UI in a browser, report what it shows, then exit"""
    from smokedriver.automation import BrowserOptions, BrowserType

    browser_options = BrowserOptions(browser=BrowserType(browser_name), headless=headless)
    with agent_folder() as agent_dir:
        options = _server_options(agent_dir, workspace, extensions_dir, server_path, root, verbose)
        asyncio.run(_smoke(options, browser_options))


async def _smoke(options, browser_options):
    from smokedriver.automation import AutomationSession

    async with AutomationSession() as session:
        await session.connect_server(options)
        connection = await session.connect_browser(browser_options)
        await _report(connection.driver)


@cli.command()
@click.argument("executable", type=click.Path(exists=True, dir_okay=False))
@click.argument("args", nargs=-1)
@click.option("--root", default=None, help="Application checkout (defaults to cwd)")
def desktop(executable: str, args: tuple, root: str):
    """Launch a desktop build, report what it shows, then exit"""
    from smokedriver.automation import ElectronOptions

    options = ElectronOptions(executable_path=executable, args=list(args))
    if root:
        options.root = root
    asyncio.run(_desktop(options))


async def _desktop(options):
    from smokedriver.automation import AutomationSession

    async with AutomationSession() as session:
        connection = await session.connect_electron(options)
        await _report(connection.driver)


async def _report(driver):
    await driver.wait_for_ready()
    title = await driver.get_title()
    locale = await driver.get_locale_info()

    table = Table(title="Application", show_header=False)
    table.add_column("Label", style="dim")
    table.add_column("Value")
    table.add_row("Title", title)
    table.add_row("Language", locale.language)
    table.add_row("Locale", locale.locale or "-")
    console.print(table)

    await driver.exit_application()
    console.print("[green]✓[/green] Application exited")


@cli.command()
@click.argument("keybinding")
def keys(keybinding: str):
    """Show the Playwright keys a keybinding presses"""
    from smokedriver.automation import parse_keybinding

    chords = parse_keybinding(keybinding)
    if not chords:
        console.print("[yellow]Empty keybinding[/yellow]")
        return

    table = Table(title=f"Keybinding: {keybinding}")
    table.add_column("Chord", style="cyan", justify="right")
    table.add_column("Press")
    table.add_column("Release", style="dim")
    for index, chord in enumerate(chords, start=1):
        table.add_row(str(index), " + ".join(chord), " + ".join(reversed(chord)))
    console.print(table)


if __name__ == "__main__":
    cli()
