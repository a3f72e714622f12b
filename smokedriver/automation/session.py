"""
AutomationSession - connects Playwright to the application under test.

Owns every handle of one test run: the server process, the browser, the
desktop application and the trace counter. Teardown is best effort; each
step logs its own failure so the others still run.
"""
import asyncio
import json
import socket
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..logging_config import get_logger
from .driver import PlaywrightDriver
from .models import (
    BrowserOptions,
    ElectronOptions,
    NotConnectedError,
    ServerOptions,
)
from .server import DEVTOOLS_PATTERN, LaunchedProcess, launch_server

logger = get_logger("smokedriver.session")

FIRST_SERVER_PORT = 9000
VIEWPORT = {"width": 1200, "height": 800}
WORKSPACE_AUTHORITY = "vscode-remote://localhost:9888"
STARTUP_PAYLOAD = [["enableProposedApi", ""], ["skipWelcome", "true"]]


@dataclass
class SessionClient:
    """Handle given to callers for tearing the run down."""
    session: "AutomationSession"

    async def dispose(self):
        await self.session.disconnect()


@dataclass
class Connection:
    client: SessionClient
    driver: PlaywrightDriver


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def workspace_url(endpoint: str, workspace_path: str) -> str:
    folder_path = Path(workspace_path).resolve().as_uri()[len("file://"):]
    payload = json.dumps(STARTUP_PAYLOAD, separators=(",", ":"))
    return f"{endpoint}&folder={WORKSPACE_AUTHORITY}{folder_path}&payload={payload}"


class AutomationSession:
    """One application under test and the Playwright objects attached to it."""

    def __init__(self):
        self.port = FIRST_SERVER_PORT
        self.server: Optional[LaunchedProcess] = None
        self.endpoint: Optional[str] = None
        self.workspace_path: Optional[str] = None
        self.logs_path: Optional[Path] = None
        self.browser = None
        self.electron = None
        self.electron_process: Optional[LaunchedProcess] = None
        self.trace_counter = 1
        self._playwright = None

    async def __aenter__(self) -> "AutomationSession":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.disconnect()

    async def _ensure_playwright(self):
        """Lazy-init Playwright on first use."""
        if self._playwright is None:
            from playwright.async_api import async_playwright
            self._playwright = await async_playwright().start()
            logger.info("Playwright initialized")
        return self._playwright

    def next_trace_name(self) -> str:
        name = f"playwright-trace-{self.trace_counter}.zip"
        self.trace_counter += 1
        return name

    def _build_driver(self, context, page, logs_path: Path) -> PlaywrightDriver:
        return PlaywrightDriver(
            context,
            page,
            logs_path,
            next_trace_name=self.next_trace_name,
            on_exit=self.disconnect,
        )

    # ==================== Connect ====================

    async def connect_server(self, options: ServerOptions):
        """Launch the web server and remember its endpoint."""
        self.workspace_path = options.workspace_path
        self.logs_path = options.logs_path
        port = self.port
        self.port += 1
        self.server, self.endpoint = await launch_server(options, port)

    async def connect_browser(self, options: Optional[BrowserOptions] = None) -> Connection:
        """Open a browser on the running server's web UI."""
        if self.endpoint is None or self.workspace_path is None:
            raise NotConnectedError("connect_server must succeed before connect_browser")
        options = options or BrowserOptions()

        playwright = await self._ensure_playwright()
        launcher = getattr(playwright, options.browser.value)
        self.browser = await launcher.launch(headless=options.headless)
        logger.info_with("Browser launched", browser=options.browser.value, headless=options.headless)

        context = await self.browser.new_context()
        await self._start_tracing(context)

        page = await context.new_page()
        await page.set_viewport_size(VIEWPORT)
        self._attach_page_logging(page, "page")

        await page.goto(workspace_url(self.endpoint, self.workspace_path))

        return Connection(
            client=SessionClient(self),
            driver=self._build_driver(context, page, self.logs_path),
        )

    async def connect_electron(self, options: ElectronOptions) -> Connection:
        """Launch the desktop build and attach to its first window over CDP."""
        port = free_port()
        self.electron_process = await LaunchedProcess.spawn(
            options.executable_path,
            [*options.args, f"--remote-debugging-port={port}"],
            options.env,
            DEVTOOLS_PATTERN,
            ready_stream="stderr",
            label="Electron",
        )
        try:
            await self.electron_process.wait_ready()
        except BaseException:
            await self._close_electron()
            raise

        playwright = await self._ensure_playwright()
        self.electron = await playwright.chromium.connect_over_cdp(f"http://127.0.0.1:{port}")

        context = self.electron.contexts[0] if self.electron.contexts else await self.electron.new_context()
        window = context.pages[0] if context.pages else await context.wait_for_event("page")
        await self._start_tracing(context)

        window.on("requestfailed", lambda request: logger.error(f"Playwright ERROR: request failed {request.url}"))
        self._attach_page_logging(window, "window")

        return Connection(
            client=SessionClient(self),
            driver=self._build_driver(context, window, options.logs_path),
        )

    async def _start_tracing(self, context):
        try:
            await context.tracing.start(screenshots=True, snapshots=True)
        except Exception as e:
            logger.warning(f"Failed to start playwright tracing: {e}")

    def _attach_page_logging(self, page, kind: str):
        page.on("pageerror", lambda error: logger.error(f"Playwright ERROR: {kind} error: {error}"))
        page.on("crash", lambda _: logger.error(f"Playwright ERROR: {kind} crash"))
        page.on("response", self._on_response)

    @staticmethod
    def _on_response(response):
        if response.status >= 400:
            logger.error(f"Playwright ERROR: HTTP status {response.status} for {response.url}")

    # ==================== Teardown ====================

    async def _teardown(self, name: str, step):
        try:
            await step()
        except Exception as e:
            logger.warning(f"Teardown of {name} failed: {e}")

    async def _close_server(self):
        server, self.server = self.server, None
        self.endpoint = None
        await self._teardown("server", server.kill)

    async def _close_browser(self):
        browser, self.browser = self.browser, None
        await self._teardown("browser", browser.close)

    async def _close_electron(self):
        electron, self.electron = self.electron, None
        process, self.electron_process = self.electron_process, None
        if electron is not None:
            await self._teardown("electron connection", electron.close)
        if process is not None:
            await self._teardown("electron process", process.kill)

    async def disconnect(self):
        """Tear down everything this session started. Safe to call repeatedly."""
        steps = []
        if self.server is not None:
            steps.append(self._close_server())
        if self.browser is not None:
            steps.append(self._close_browser())
        if self.electron is not None or self.electron_process is not None:
            steps.append(self._close_electron())

        results = await asyncio.gather(*steps, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Teardown error: {result}")

        if self._playwright is not None:
            playwright, self._playwright = self._playwright, None
            await self._teardown("playwright", playwright.stop)
            logger.info("Playwright stopped")

