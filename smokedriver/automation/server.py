"""
Launching the application under test and discovering where it listens.

A launched process announces readiness by printing a line to one of its
output streams; the first matching line resolves the wait and the streams
keep being drained afterwards so the child never blocks on a full pipe.
"""
import asyncio
import os
import re
import sys
from pathlib import Path
from typing import Optional, Dict, List, Tuple, Pattern

import psutil

from ..logging_config import get_logger
from .models import ServerOptions, ServerLaunchError

logger = get_logger("smokedriver.server")

READY_PATTERN = re.compile(r"Web UI available at (.+)")
DEVTOOLS_PATTERN = re.compile(r"DevTools listening on (ws://\S+)")

# Longest output line read whole; longer ones are skipped
READ_LIMIT = 1024 * 1024

IS_WINDOWS = sys.platform == "win32"


def build_server_command(options: ServerOptions, port: int) -> Tuple[Path, List[str]]:
    """Return the launch script and its arguments."""
    logs_path = options.logs_path
    args = [
        "--disable-telemetry",
        "--port", str(port),
        "--browser", "none",
        "--enable-driver",
        "--extensions-dir", options.extensions_path,
    ]

    if options.server_path:
        script = Path(options.server_path) / f"server.{'cmd' if IS_WINDOWS else 'sh'}"
        args.append(f"--logsPath={logs_path}")
        if options.verbose:
            logger.info(f"Starting built server from '{script}'")
    else:
        script = Path(options.root) / "resources" / "server" / f"web.{'bat' if IS_WINDOWS else 'sh'}"
        args.extend(["--logsPath", str(logs_path)])
        if options.verbose:
            logger.info(f"Starting server out of sources from '{script}'")

    if options.verbose:
        logger.info(f"Storing log files into '{logs_path}'")

    return script, args


def build_server_env(options: ServerOptions) -> Dict[str, str]:
    env = {"VSCODE_AGENT_FOLDER": options.user_data_dir}
    if options.server_path:
        env["VSCODE_REMOTE_SERVER_PATH"] = options.server_path
    env.update(os.environ)
    return env


async def watch_output(
    stream: asyncio.StreamReader,
    label: str,
    pattern: Optional[Pattern] = None,
    found: Optional[asyncio.Future] = None,
    verbose: bool = False,
):
    """Drain a process stream, resolving `found` on the first pattern match.

    Lines longer than the stream limit are skipped. Any other read failure
    fails `found` and is re-raised from the watcher task.
    """
    try:
        while True:
            try:
                raw = await stream.readline()
            except ValueError as e:
                logger.warning(f"{label}: skipped a line over the read limit ({e})")
                continue
            if not raw:
                break
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            if verbose:
                logger.info(f"{label}: {line}")
            if pattern is not None and found is not None and not found.done():
                match = pattern.search(line)
                if match:
                    found.set_result(match.group(1).strip())
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.error(f"{label}: reading output failed: {e}")
        _fail(found, f"{label} failed before the ready signal was printed: {e}")
        raise

    _fail(found, f"{label} closed before the ready signal was printed")


def _fail(found: Optional[asyncio.Future], message: str):
    if found is not None and not found.done():
        found.set_exception(ServerLaunchError(message))


def kill_process_tree(pid: int):
    """Kill a process and all of its descendants."""
    try:
        parent = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return
    except psutil.AccessDenied:
        logger.warning(f"Access denied to process {pid}, not killed")
        return

    try:
        processes = parent.children(recursive=True)
    except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
        logger.warning(f"Could not list children of process {pid}: {e}")
        processes = []
    processes.append(parent)

    for proc in processes:
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            pass
        except psutil.AccessDenied:
            logger.warning(f"Access denied killing process {proc.pid}")

    psutil.wait_procs(processes, timeout=5)


class LaunchedProcess:
    """A child process whose output is watched for a ready signal."""

    def __init__(self, process: asyncio.subprocess.Process, ready: asyncio.Future, watchers: List[asyncio.Task]):
        self.process = process
        self._ready = ready
        self._watchers = watchers

    @property
    def pid(self) -> int:
        return self.process.pid

    @classmethod
    async def spawn(
        cls,
        program: str,
        args: List[str],
        env: Optional[Dict[str, str]],
        ready_pattern: Pattern,
        ready_stream: str = "stdout",
        verbose: bool = False,
        label: str = "Server",
    ) -> "LaunchedProcess":
        process = await asyncio.create_subprocess_exec(
            program,
            *args,
            env=env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            limit=READ_LIMIT,
        )
        logger.info_with(f"{label} process started", pid=process.pid)

        ready = asyncio.get_running_loop().create_future()
        watchers = []
        for name, stream in (("stdout", process.stdout), ("stderr", process.stderr)):
            is_ready_stream = name == ready_stream
            watchers.append(asyncio.create_task(watch_output(
                stream,
                f"{label} {name}",
                pattern=ready_pattern if is_ready_stream else None,
                found=ready if is_ready_stream else None,
                verbose=verbose,
            )))
        return cls(process, ready, watchers)

    async def wait_ready(self) -> str:
        """The first capture of the ready pattern."""
        return await self._ready

    async def kill(self):
        try:
            await asyncio.to_thread(kill_process_tree, self.process.pid)
        finally:
            for task in self._watchers:
                task.cancel()
            await asyncio.gather(*self._watchers, return_exceptions=True)
            if not self._ready.done():
                self._ready.cancel()


async def launch_server(options: ServerOptions, port: int) -> Tuple[LaunchedProcess, str]:
    """Start the web server and wait until it reports its endpoint."""
    Path(options.user_data_dir).mkdir(parents=True, exist_ok=True)

    script, args = build_server_command(options, port)
    server = await LaunchedProcess.spawn(
        str(script),
        args,
        build_server_env(options),
        READY_PATTERN,
        verbose=options.verbose,
    )

    try:
        endpoint = await server.wait_ready()
    except BaseException:
        await server.kill()
        raise

    logger.info_with("Server ready", endpoint=endpoint, port=port)
    return server, endpoint
