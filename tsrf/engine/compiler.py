"""Incremental compiler child process.

The watch command keeps ``tsc --build --watch`` running next to the
engine: the compiler produces the build artifacts the engine consumes, the
engine keeps the references the compiler follows up to date.  Output is
passed through with the compiler's screen clearing removed so engine
notices stay visible.
"""

from __future__ import annotations

import re
import signal
import subprocess
import sys
from pathlib import Path

import anyio
from anyio.abc import ByteReceiveStream, Process, TaskStatus
from loguru import logger

CLEAR_SCREEN_RE = re.compile(r"\x1bc|\x1b\[2J|\x1b\[3J")

STOP_GRACE_PERIOD = 5.0
"""Seconds to wait after SIGINT before the compiler is killed."""


def strip_clear_screen(output: str) -> str:
    return CLEAR_SCREEN_RE.sub("", output)


class CompilerProcess:
    """Runs the compiler command in the project root until stopped."""

    def __init__(self, command: str, cwd: str | Path) -> None:
        self.command = command
        self.cwd = Path(cwd)
        self._process: Process | None = None

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def run(self, *, task_status: TaskStatus[None] = anyio.TASK_STATUS_IGNORED) -> int:
        """Spawn the compiler and stream its output until it exits."""
        logger.debug("Starting compiler: {}", self.command)
        async with await anyio.open_process(self.command, cwd=self.cwd, stdin=subprocess.DEVNULL) as process:
            self._process = process
            task_status.started()
            async with anyio.create_task_group() as tg:
                if process.stdout is not None:
                    tg.start_soon(_pump, process.stdout)
                if process.stderr is not None:
                    tg.start_soon(_pump, process.stderr)
            returncode = await process.wait()

        logger.debug("Compiler exited with {}", returncode)
        return returncode

    async def stop(self, grace_period: float = STOP_GRACE_PERIOD) -> None:
        """Interrupt the compiler, killing it if it does not exit in time."""
        process = self._process
        if process is None or process.returncode is not None:
            return

        process.send_signal(signal.SIGINT)
        with anyio.move_on_after(grace_period):
            await process.wait()
            return
        logger.warning("Compiler did not stop after {}s, killing it", grace_period)
        process.kill()


async def _pump(stream: ByteReceiveStream) -> None:
    async for chunk in stream:
        sys.stdout.write(strip_clear_screen(chunk.decode(errors="replace")))
        sys.stdout.flush()
