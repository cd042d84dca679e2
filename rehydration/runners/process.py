"""Local process task runner.

Spawns ``python -m rehydration.worker`` as a detached child process that
inherits the service environment. Intended for development.
"""

from __future__ import annotations

import asyncio
import os
import sys
from typing import TYPE_CHECKING

import structlog

from rehydration.errors import TaskStartError
from rehydration.runners.base import TaskInfo, TaskRunner, TaskSpec

if TYPE_CHECKING:
    from rehydration.config import ProcessRunnerConfig

logger = structlog.get_logger()


class ProcessTaskRunner(TaskRunner):
    """Starts workers as local subprocesses."""

    def __init__(self, config: "ProcessRunnerConfig") -> None:
        self._python = config.python or sys.executable
        self._log = logger.bind(runner="process")
        self._processes: dict[int, asyncio.subprocess.Process] = {}
        self._reapers: set[asyncio.Task] = set()

    async def run(self, spec: TaskSpec) -> TaskInfo:
        env = {**os.environ, **spec.environment()}
        try:
            process = await asyncio.create_subprocess_exec(
                self._python,
                "-m",
                "rehydration.worker",
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            raise TaskStartError(f"error starting worker process: {e}") from e

        self._processes[process.pid] = process
        # Reap the child when it exits
        reaper = asyncio.get_running_loop().create_task(self._wait(process))
        self._reapers.add(reaper)
        reaper.add_done_callback(self._reapers.discard)

        self._log.info("runner.process.started", pid=process.pid, dataset=spec.dataset.record_id)
        return TaskInfo(task_arn=f"process:{process.pid}")

    async def _wait(self, process: asyncio.subprocess.Process) -> None:
        returncode = await process.wait()
        self._processes.pop(process.pid, None)
        self._log.info("runner.process.exited", pid=process.pid, returncode=returncode)

    async def close(self) -> None:
        # Workers own their records; leave them running and stop waiting
        for reaper in list(self._reapers):
            reaper.cancel()
        self._reapers.clear()
        self._processes.clear()
