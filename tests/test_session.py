import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from smokedriver.automation.models import (
    BrowserOptions,
    BrowserType,
    ElectronOptions,
    NotConnectedError,
    ServerLaunchError,
    ServerOptions,
)
from smokedriver.automation.session import AutomationSession, SessionClient, workspace_url

ENDPOINT = "http://localhost:9000/?tkn=abc"


def make_server_options(tmp_path):
    return ServerOptions(
        user_data_dir=str(tmp_path / "agent"),
        workspace_path=str(tmp_path),
        extensions_path=str(tmp_path / "extensions"),
        server_path=None,
        root=str(tmp_path),
    )


def make_page():
    page = MagicMock()
    page.set_viewport_size = AsyncMock()
    page.goto = AsyncMock()
    page.evaluate = AsyncMock()
    return page


def make_context(page):
    context = MagicMock()
    context.tracing.start = AsyncMock()
    context.tracing.stop = AsyncMock()
    context.new_page = AsyncMock(return_value=page)
    context.pages = [page]
    return context


@pytest.fixture
def session():
    return AutomationSession()


@pytest.fixture
def playwright(session):
    page = make_page()
    context = make_context(page)
    browser = MagicMock()
    browser.new_context = AsyncMock(return_value=context)
    browser.close = AsyncMock()

    playwright = MagicMock()
    playwright.stop = AsyncMock()
    for name in ("chromium", "firefox", "webkit"):
        getattr(playwright, name).launch = AsyncMock(return_value=browser)
    session._playwright = playwright
    playwright.test_page = page
    playwright.test_context = context
    playwright.test_browser = browser
    return playwright


def connected_server():
    server = MagicMock()
    server.kill = AsyncMock()
    server.pid = 4242
    return server


class TestWorkspaceUrl:
    def test_format(self, tmp_path):
        url = workspace_url(ENDPOINT, str(tmp_path))
        folder = tmp_path.resolve().as_uri()[len("file://"):]
        assert url == (
            f"{ENDPOINT}&folder=vscode-remote://localhost:9888{folder}"
            '&payload=[["enableProposedApi",""],["skipWelcome","true"]]'
        )


class TestTraceNames:
    def test_strictly_increasing(self, session):
        names = [session.next_trace_name() for _ in range(3)]
        assert names == ["playwright-trace-1.zip", "playwright-trace-2.zip", "playwright-trace-3.zip"]

    @pytest.mark.asyncio
    async def test_increase_across_connect_exit_cycles(self, session, playwright, tmp_path):
        saved = []
        for _ in range(2):
            session.server = connected_server()
            session.endpoint = ENDPOINT
            session.workspace_path = str(tmp_path)
            session.logs_path = tmp_path / "logs"
            session._playwright = playwright
            connection = await session.connect_browser()
            await connection.driver.exit_application()
            saved.append(playwright.test_context.tracing.stop.await_args.kwargs["path"])
        assert saved == [
            str(tmp_path / "logs" / "playwright-trace-1.zip"),
            str(tmp_path / "logs" / "playwright-trace-2.zip"),
        ]


class TestConnectServer:
    @pytest.mark.asyncio
    async def test_stores_endpoint_and_advances_port(self, session, tmp_path):
        options = make_server_options(tmp_path)
        with patch(
            "smokedriver.automation.session.launch_server",
            new=AsyncMock(side_effect=lambda opts, port: (connected_server(), ENDPOINT)),
        ) as launch:
            await session.connect_server(options)
            await session.connect_server(options)
        assert [call.args[1] for call in launch.await_args_list] == [9000, 9001]
        assert session.endpoint == ENDPOINT
        assert session.workspace_path == str(tmp_path)
        assert session.logs_path == options.logs_path

    @pytest.mark.asyncio
    async def test_launch_failure_propagates(self, session, tmp_path):
        with patch(
            "smokedriver.automation.session.launch_server",
            new=AsyncMock(side_effect=ServerLaunchError("closed")),
        ):
            with pytest.raises(ServerLaunchError):
                await session.connect_server(make_server_options(tmp_path))
        assert session.server is None
        assert session.endpoint is None


class TestConnectBrowser:
    @pytest.mark.asyncio
    async def test_requires_server(self, session):
        with pytest.raises(NotConnectedError):
            await session.connect_browser()

    @pytest.mark.asyncio
    async def test_opens_workspace(self, session, playwright, tmp_path):
        session.server = connected_server()
        session.endpoint = ENDPOINT
        session.workspace_path = str(tmp_path)
        session.logs_path = tmp_path / "logs"

        connection = await session.connect_browser(BrowserOptions(BrowserType.FIREFOX, headless=True))

        playwright.firefox.launch.assert_awaited_once_with(headless=True)
        playwright.test_context.tracing.start.assert_awaited_once_with(screenshots=True, snapshots=True)
        playwright.test_page.set_viewport_size.assert_awaited_once_with({"width": 1200, "height": 800})
        playwright.test_page.goto.assert_awaited_once_with(workspace_url(ENDPOINT, str(tmp_path)))
        assert connection.driver.page is playwright.test_page
        assert connection.driver.logs_path == tmp_path / "logs"
        assert isinstance(connection.client, SessionClient)
        assert session.browser is playwright.test_browser

    @pytest.mark.asyncio
    async def test_tracing_failure_is_tolerated(self, session, playwright, tmp_path):
        playwright.test_context.tracing.start.side_effect = RuntimeError("no tracing")
        session.endpoint = ENDPOINT
        session.workspace_path = str(tmp_path)
        connection = await session.connect_browser()
        assert connection.driver is not None
        playwright.chromium.launch.assert_awaited_once_with(headless=False)

    @pytest.mark.asyncio
    async def test_page_events_are_logged(self, session, playwright, tmp_path):
        session.endpoint = ENDPOINT
        session.workspace_path = str(tmp_path)
        await session.connect_browser()
        events = {call.args[0] for call in playwright.test_page.on.call_args_list}
        assert {"pageerror", "crash", "response"} <= events

    @pytest.mark.asyncio
    async def test_client_dispose_disconnects(self, session, playwright, tmp_path):
        server = connected_server()
        session.server = server
        session.endpoint = ENDPOINT
        session.workspace_path = str(tmp_path)
        connection = await session.connect_browser()
        await connection.client.dispose()
        server.kill.assert_awaited_once()
        playwright.test_browser.close.assert_awaited_once()
        assert session.browser is None


class TestResponseLogging:
    def test_error_status_is_logged(self, caplog):
        response = MagicMock(status=404, url="http://localhost:9000/missing.js")
        AutomationSession._on_response(response)
        assert "HTTP status 404 for http://localhost:9000/missing.js" in caplog.text

    def test_success_is_quiet(self, caplog):
        AutomationSession._on_response(MagicMock(status=200, url="http://localhost:9000/"))
        assert caplog.text == ""


class TestConnectElectron:
    @pytest.mark.asyncio
    async def test_attaches_to_first_window(self, session, playwright, tmp_path):
        window = make_page()
        context = make_context(window)
        cdp = MagicMock(contexts=[context])
        cdp.close = AsyncMock()
        playwright.chromium.connect_over_cdp = AsyncMock(return_value=cdp)

        process = MagicMock()
        process.wait_ready = AsyncMock(return_value="ws://127.0.0.1:1/devtools/browser/x")
        process.kill = AsyncMock()

        options = ElectronOptions(executable_path="/opt/code/code", args=["--skip-welcome"], root=str(tmp_path))
        with patch("smokedriver.automation.session.LaunchedProcess.spawn", new=AsyncMock(return_value=process)) as spawn, \
                patch("smokedriver.automation.session.free_port", return_value=9333):
            connection = await session.connect_electron(options)

        assert spawn.await_args.args[0] == "/opt/code/code"
        assert spawn.await_args.args[1] == ["--skip-welcome", "--remote-debugging-port=9333"]
        assert spawn.await_args.kwargs["ready_stream"] == "stderr"
        playwright.chromium.connect_over_cdp.assert_awaited_once_with("http://127.0.0.1:9333")
        assert connection.driver.page is window
        assert connection.driver.logs_path == tmp_path / ".build" / "logs" / "smoke-tests"

        await session.disconnect()
        cdp.close.assert_awaited_once()
        process.kill.assert_awaited_once()
        assert session.electron is None
        assert session.electron_process is None

    @pytest.mark.asyncio
    async def test_no_ready_signal_kills_process(self, session):
        process = MagicMock()
        process.wait_ready = AsyncMock(side_effect=ServerLaunchError("closed"))
        process.kill = AsyncMock()
        with patch("smokedriver.automation.session.LaunchedProcess.spawn", new=AsyncMock(return_value=process)):
            with pytest.raises(ServerLaunchError):
                await session.connect_electron(ElectronOptions(executable_path="/opt/code/code"))
        process.kill.assert_awaited_once()
        assert session.electron_process is None


class TestDisconnect:
    @pytest.mark.asyncio
    async def test_nothing_active_is_a_noop(self, session):
        await session.disconnect()
        await session.disconnect()
        assert session.server is None
        assert session.browser is None
        assert session.electron is None

    @pytest.mark.asyncio
    async def test_attempts_every_step_when_one_fails(self, session):
        server = connected_server()
        server.kill.side_effect = RuntimeError("kill failed")
        browser = MagicMock()
        browser.close = AsyncMock(side_effect=RuntimeError("close failed"))
        electron = MagicMock()
        electron.close = AsyncMock()
        electron_process = MagicMock()
        electron_process.kill = AsyncMock()
        playwright = MagicMock()
        playwright.stop = AsyncMock()

        session.server = server
        session.endpoint = ENDPOINT
        session.browser = browser
        session.electron = electron
        session.electron_process = electron_process
        session._playwright = playwright

        await session.disconnect()

        server.kill.assert_awaited_once()
        browser.close.assert_awaited_once()
        electron.close.assert_awaited_once()
        electron_process.kill.assert_awaited_once()
        playwright.stop.assert_awaited_once()
        assert session.server is None
        assert session.endpoint is None
        assert session.browser is None
        assert session.electron is None
        assert session._playwright is None

    @pytest.mark.asyncio
    async def test_second_disconnect_does_nothing(self, session):
        server = connected_server()
        session.server = server
        await session.disconnect()
        await session.disconnect()
        server.kill.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_context_manager_disconnects(self):
        server = connected_server()
        async with AutomationSession() as session:
            session.server = server
        server.kill.assert_awaited_once()
        assert session.server is None
