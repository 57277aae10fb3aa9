"""Fire-and-forget notification sinks."""

import asyncio
import logging
import shutil
from typing import Optional

from rich.console import Console

logger = logging.getLogger(__name__)

APP_TITLE = "Pomodoro for Obsidian"
NOTIFY_TIMEOUT_S = 5


class ConsoleNotifier:
    """Prints notifications to the terminal."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(stderr=True)

    def notify(self, message: str) -> None:
        logger.info(f"Notification: {message}")
        self.console.print(f"[bold cyan]{APP_TITLE}[/bold cyan] {message}")


class DesktopNotifier:
    """Desktop bubble via notify-send, falling back to another notifier.

    While the loop runs, notify-send is spawned as a task so the countdown
    never waits on it. Before the loop starts the call runs to completion.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        fallback=None,
        command: str = "notify-send",
        timeout: float = NOTIFY_TIMEOUT_S,
    ):
        self.loop = loop
        self.fallback = fallback
        self.command = shutil.which(command)
        self.timeout = timeout
        self._tasks: set[asyncio.Task] = set()

    def notify(self, message: str) -> None:
        if not self.command:
            self._fall_back(message)
            return
        if self.loop.is_running():
            task = self.loop.create_task(self._send(message))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        else:
            self.loop.run_until_complete(self._send(message))

    async def _send(self, message: str) -> None:
        try:
            proc = await asyncio.create_subprocess_exec(
                self.command, APP_TITLE, message,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
            try:
                _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
            except asyncio.TimeoutError:
                proc.kill()
                await proc.wait()
                raise OSError(f"killed after {self.timeout}s timeout")
            if proc.returncode != 0:
                detail = (stderr or b"").decode("utf-8", errors="replace").strip()
                raise OSError(f"exit code {proc.returncode}: {detail}")
            logger.info(f"Notification: {message}")
        except OSError as e:
            logger.warning(f"notify-send failed: {e}")
            self._fall_back(message)

    def _fall_back(self, message: str) -> None:
        if self.fallback is not None:
            self.fallback.notify(message)
