"""Command runner.

Runs a validated command in a child process and captures its output.

Key guarantees:
1. A string command runs through the configured shell (``/bin/sh -c``);
   an argument list is executed directly, with no shell involved.
2. The timeout is clamped to [MIN_TIMEOUT_S, MAX_TIMEOUT_S].  On expiry
   the child's whole process group gets SIGTERM, then SIGKILL after a
   grace period; partial output is discarded and :class:`ExecutionTimeout`
   is raised.
3. The child's exit status is returned unchanged.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import shutil
import signal
import time
from collections.abc import Mapping, Sequence

from safeshell.core.errors import DependencyMissing, ExecutionFailed, ExecutionTimeout
from safeshell.core.types import ExecutionResult
from safeshell.execution.environment import EnvironmentManager

logger = logging.getLogger(__name__)

MIN_TIMEOUT_S = 1
MAX_TIMEOUT_S = 600
DEFAULT_TIMEOUT_S = 30

# Grace period before SIGKILL after SIGTERM.
GRACEFUL_SHUTDOWN_S = 5


def require_binary(*names: str) -> str:
    """Return the path of the first of *names* found on ``PATH``.

    Raises
    ------
    DependencyMissing
        If none of the binaries is installed.
    """
    for name in names:
        found = shutil.which(name)
        if found is not None:
            return found
    raise DependencyMissing(
        f"Required tool not found: {' or '.join(names)}",
        details={"binaries": list(names)},
    )


class CommandRunner:
    """Execute commands in a child process.

    Usage::

        runner = CommandRunner()
        result = await runner.execute("ls -la /tmp", timeout=10)
        # result.exit_status, result.stdout, result.stderr
    """

    def __init__(
        self,
        *,
        shell: str = "/bin/sh",
        default_timeout: float = DEFAULT_TIMEOUT_S,
        env_manager: EnvironmentManager | None = None,
    ) -> None:
        self._shell = shell
        self._default_timeout = default_timeout
        self._env_manager = env_manager or EnvironmentManager()

    async def execute(
        self,
        command: str | Sequence[str],
        *,
        timeout: float | None = None,
        cwd: str | os.PathLike[str] | None = None,
        extra_env: Mapping[str, str] | None = None,
    ) -> ExecutionResult:
        """Execute *command* and wait for it to finish.

        Parameters
        ----------
        command:
            Either a shell command string or an argument list for direct
            exec.
        timeout:
            Maximum execution time in seconds, clamped to
            [MIN_TIMEOUT_S, MAX_TIMEOUT_S].
        cwd:
            Working directory of the child.
        extra_env:
            Additional environment variables for the child.

        Raises
        ------
        ExecutionTimeout
            If the process exceeds *timeout*.
        ExecutionFailed
            If the process cannot be spawned.
        """
        limit = _clamp_timeout(self._default_timeout if timeout is None else timeout)
        env = self._env_manager.build_child_env(extra_vars=extra_env)
        argv = [self._shell, "-c", command] if isinstance(command, str) else list(command)
        if not argv:
            raise ExecutionFailed("Empty argument list")

        logger.debug("Spawning %s (timeout %.0fs)", argv[0], limit)
        started = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                env=env,
                cwd=cwd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                close_fds=True,
                start_new_session=True,
            )
        except OSError as exc:
            raise ExecutionFailed(
                f"Failed to spawn child process: {exc.strerror or exc}",
                details={"program": argv[0]},
            ) from exc

        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(proc.communicate(), timeout=limit)
        except TimeoutError as exc:
            await self._terminate_process(proc)
            logger.info("Child %s killed after %.0fs", argv[0], limit)
            raise ExecutionTimeout(
                f"Process exceeded timeout of {limit:g}s",
                details={"timeout": limit},
            ) from exc

        return ExecutionResult(
            exit_status=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout_bytes.decode("utf-8", errors="replace"),
            stderr=stderr_bytes.decode("utf-8", errors="replace"),
            duration=round(time.monotonic() - started, 3),
        )

    def run(self, command: str | Sequence[str], timeout: float | None = None) -> ExecutionResult:
        """Synchronous wrapper around :meth:`execute`."""
        return asyncio.run(self.execute(command, timeout=timeout))

    @staticmethod
    async def _terminate_process(proc: asyncio.subprocess.Process) -> None:
        """SIGTERM the process group, wait up to GRACEFUL_SHUTDOWN_S, then SIGKILL.

        The child leads its own session, so the group also holds every
        subshell and pipeline stage it started.
        """
        try:
            os.killpg(proc.pid, signal.SIGTERM)
        except ProcessLookupError:
            return

        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(proc.wait(), timeout=GRACEFUL_SHUTDOWN_S)
        # Members that outlived the leader or ignored SIGTERM.
        with contextlib.suppress(ProcessLookupError):
            os.killpg(proc.pid, signal.SIGKILL)
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(proc.wait(), timeout=1.0)


def _clamp_timeout(timeout: int | float) -> float:
    """Clamp *timeout* to [MIN_TIMEOUT_S, MAX_TIMEOUT_S]."""
    return max(float(MIN_TIMEOUT_S), min(float(timeout), float(MAX_TIMEOUT_S)))
