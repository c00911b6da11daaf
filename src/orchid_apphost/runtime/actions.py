"""Start actions for resources provisioned by an external command."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from contextlib import suppress
from dataclasses import dataclass

from orchid_apphost.runtime.errors import ApphostError
from orchid_apphost.runtime.registry import ResourceSpec

logger = logging.getLogger(__name__)


class CommandFailedError(ApphostError):
    """Raised when a start command exits with a non-zero status."""

    def __init__(self, argv: Sequence[str], returncode: int, stderr: str) -> None:
        self.argv = tuple(argv)
        self.returncode = returncode
        self.stderr = stderr
        detail = f": {stderr.strip()}" if stderr.strip() else ""
        super().__init__(f"Command {argv[0]!r} exited with {returncode}{detail}")


@dataclass(frozen=True, slots=True)
class CommandResult:
    argv: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


async def run_command(
    argv: Sequence[str],
    *,
    timeout_seconds: float = 60.0,
    env: dict[str, str] | None = None,
    check: bool = True,
) -> CommandResult:
    """Run ``argv`` to completion and capture its output.

    The child is killed and reaped if the call does not finish normally, which
    covers the timeout as well as cancellation of the awaiting task.
    """
    if not argv:
        raise ValueError("argv must not be empty")
    command = tuple(argv)
    process = await asyncio.create_subprocess_exec(
        *command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=env,
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout_seconds)
    finally:
        if process.returncode is None:
            with suppress(ProcessLookupError):
                process.kill()
            await process.wait()
            logger.warning("Killed unfinished command", extra={"command": command[0]})

    result = CommandResult(
        argv=command,
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )
    if check and not result.ok:
        raise CommandFailedError(command, result.returncode, result.stderr)
    return result


def command_start_action(
    argv: Sequence[str],
    *,
    timeout_seconds: float = 60.0,
    env: dict[str, str] | None = None,
) -> Callable[[ResourceSpec], Awaitable[None]]:
    """Run ``argv`` (e.g. ``docker run -d ...``) and treat exit code 0 as "start accepted".

    The command is expected to return quickly; readiness is still probed
    separately by the orchestrator.
    """
    if not argv:
        raise ValueError("argv must not be empty")
    command = list(argv)

    async def start(spec: ResourceSpec) -> None:
        logger.info("Running start command", extra={"resource": spec.name, "command": command[0]})
        await run_command(command, timeout_seconds=timeout_seconds, env=env)

    return start


@dataclass(frozen=True, slots=True)
class CommandProvisioner:
    """Owns an externally provisioned resource through a start and a stop command.

    ``provision`` runs the stop command first so a leftover container from an
    earlier run (or an earlier attempt) does not collide with the new one.
    """

    name: str
    start_command: tuple[str, ...] | None = None
    stop_command: tuple[str, ...] | None = None
    timeout_seconds: float = 60.0

    @classmethod
    def create(
        cls,
        name: str,
        start_command: Sequence[str] | None,
        stop_command: Sequence[str] | None,
    ) -> CommandProvisioner:
        return cls(
            name=name,
            start_command=tuple(start_command) if start_command else None,
            stop_command=tuple(stop_command) if stop_command else None,
        )

    async def provision(self, spec: ResourceSpec) -> None:
        await self.deprovision()
        if self.start_command:
            await command_start_action(self.start_command, timeout_seconds=self.timeout_seconds)(
                spec
            )

    async def deprovision(self) -> None:
        """Run the stop command; a non-zero exit (nothing to stop) is only logged."""
        if not self.stop_command:
            return
        result = await run_command(
            self.stop_command,
            timeout_seconds=self.timeout_seconds,
            check=False,
        )
        if not result.ok:
            logger.debug(
                "Stop command reported nothing to stop",
                extra={
                    "resource": self.name,
                    "returncode": result.returncode,
                    "stderr": result.stderr.strip(),
                },
            )
