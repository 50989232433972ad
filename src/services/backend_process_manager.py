"""Start/stop control for the local verification backends.

Two backends can be managed from the API:

- ``email``: the Reacher container, started with ``docker start`` and
  created with ``docker run`` when no such container exists yet.
- ``phone``: a local validation server launched as a child process in its
  own working directory and stopped by terminating that process.

Every public call on a manager is serialized by an ``asyncio.Lock``, so a
second start request waits for the first instead of spawning twice.
``start()`` returns immediately when the backend already answers.
"""

from __future__ import annotations

import asyncio
import shlex
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict

from src.models.verification import BackendStatus

logger = structlog.get_logger(logger_name=__name__)

ProbeFn = Callable[[], Awaitable[BackendStatus]]
SleepFn = Callable[[float], Awaitable[Any]]


class BackendActionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    message: str
    status: BackendStatus | None = None


class BackendProcessManager(ABC):
    """Single-flight start/stop/status for one verification backend.

    Parameters
    ----------
    name:
        ``"email"`` or ``"phone"``; used in messages and logs.
    probe:
        Availability check (the verifier's ``check_available``).
    startup_wait:
        Seconds to wait after launching before probing again.
    stop_wait:
        Seconds to wait after stopping.
    sleep:
        Awaitable sleep, injectable for tests.
    """

    def __init__(
        self,
        name: str,
        probe: ProbeFn,
        startup_wait: float = 2.0,
        stop_wait: float = 0.5,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self.name = name
        self._probe = probe
        self._startup_wait = startup_wait
        self._stop_wait = stop_wait
        self._sleep = sleep
        self._lock = asyncio.Lock()

    async def status(self) -> BackendStatus:
        async with self._lock:
            return await self._probe()

    async def start(self) -> BackendActionResult:
        async with self._lock:
            current = await self._probe()
            if current.available:
                return BackendActionResult(
                    success=True,
                    message=f"{self.name.capitalize()} backend already running",
                    status=current,
                )

            logger.info("verification_backend_starting", backend=self.name)
            await self._launch()
            await self._sleep(self._startup_wait)

            after = await self._probe()
            message = (
                f"{self.name.capitalize()} backend started"
                if after.available
                else f"Failed to start {self.name} backend"
            )
            logger.info("verification_backend_start_result", backend=self.name, available=after.available)
            return BackendActionResult(success=after.available, message=message, status=after)

    async def stop(self) -> BackendActionResult:
        async with self._lock:
            logger.info("verification_backend_stopping", backend=self.name)
            await self._terminate()
            await self._sleep(self._stop_wait)
            return BackendActionResult(success=True, message=f"{self.name.capitalize()} backend stopped")

    @abstractmethod
    async def _launch(self) -> None:
        """Start the backend; failures are logged, not raised."""

    @abstractmethod
    async def _terminate(self) -> None:
        """Stop the backend; an already stopped backend is not an error."""


async def _run_command(*argv: str) -> int:
    """Run *argv* to completion and return its exit code (127 if not found)."""
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        logger.warning("backend_command_unavailable", command=argv[0], error=str(exc))
        return 127
    _, stderr = await process.communicate()
    if process.returncode:
        logger.debug(
            "backend_command_failed",
            command=" ".join(argv[:2]),
            returncode=process.returncode,
            stderr=stderr.decode(errors="replace")[:500] if stderr else "",
        )
    return process.returncode or 0


class DockerBackendManager(BackendProcessManager):
    """Runs a backend as a named docker container."""

    def __init__(
        self,
        name: str,
        probe: ProbeFn,
        container: str,
        image: str,
        port: int = 8080,
        container_port: int = 8080,
        **kwargs: Any,
    ) -> None:
        super().__init__(name, probe, **kwargs)
        self._container = container
        self._image = image
        self._port = port
        self._container_port = container_port

    async def _launch(self) -> None:
        if await _run_command("docker", "start", self._container) == 0:
            return
        code = await _run_command(
            "docker",
            "run",
            "-d",
            "-p",
            f"{self._port}:{self._container_port}",
            "--name",
            self._container,
            self._image,
        )
        if code != 0:
            logger.warning("docker_run_failed", container=self._container, returncode=code)

    async def _terminate(self) -> None:
        await _run_command("docker", "stop", self._container)


class ProcessBackendManager(BackendProcessManager):
    """Runs a backend as a tracked child process."""

    def __init__(
        self,
        name: str,
        probe: ProbeFn,
        command: str,
        cwd: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(name, probe, **kwargs)
        self._argv = shlex.split(command)
        self._cwd = cwd
        self._process: asyncio.subprocess.Process | None = None

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def _launch(self) -> None:
        if self.running or not self._argv:
            return
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self._argv,
                cwd=self._cwd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as exc:
            logger.warning("backend_spawn_failed", backend=self.name, error=str(exc))
            self._process = None
            return
        logger.info("backend_spawned", backend=self.name, pid=self._process.pid)

    async def _terminate(self) -> None:
        process = self._process
        self._process = None
        if process is None or process.returncode is not None:
            return
        try:
            process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=5.0)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
