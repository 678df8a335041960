"""Subprocess execution with argument vectors, timeouts and output caps.

Commands are always started from a list of arguments, never through a
shell, so no argument can be reinterpreted as shell syntax whatever
characters it contains.
"""

from __future__ import annotations

import os
import subprocess
import time
from collections.abc import Mapping, Sequence
from enum import Enum
from pathlib import Path

from gitplus.core.errors import CommandTimeout, ExecError
from gitplus.core.log import logger
from gitplus.core.result import ExecResult


class ExitPolicy(str, Enum):
    """How a non-zero exit code is interpreted for a given tool.

    STRICT: any non-zero exit is an ExecError.
    ACCEPT_WITH_OUTPUT: a non-zero exit that still produced stdout is
        returned as a result; with empty stdout it is an ExecError.
    """

    STRICT = "strict"
    ACCEPT_WITH_OUTPUT = "accept_with_output"


def _decode(data: bytes | None, limit: int) -> tuple[str, bool]:
    if not data:
        return "", False
    truncated = len(data) > limit
    if truncated:
        data = data[:limit]
    return data.decode("utf-8", errors="replace"), truncated


class Runner:
    """Runs external commands on behalf of one tool.

    Each Runner carries the defaults for the tool it drives: timeout,
    output cap, exit policy and extra environment.
    """

    def __init__(
        self,
        timeout: float = 60.0,
        max_output_bytes: int = 10 * 1024 * 1024,
        policy: ExitPolicy = ExitPolicy.STRICT,
        env: Mapping[str, str] | None = None,
    ):
        self.timeout = timeout
        self.max_output_bytes = max_output_bytes
        self.policy = policy
        self.env = dict(env or {})

    def run(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        cwd: Path | str | None = None,
        input: str | None = None,  # noqa: A002
        timeout: float | None = None,
        policy: ExitPolicy | None = None,
        check: bool = True,
    ) -> ExecResult:
        """Run ``command`` with ``args`` and capture its output.

        Args:
            command: Executable name or path
            args: Arguments, each passed to the process verbatim
            cwd: Working directory
            input: Text written to stdin; stdin is closed otherwise
            timeout: Seconds before the process is killed
            policy: Overrides the runner's exit policy for this call
            check: When False, non-zero exits are returned, not raised

        Returns:
            ExecResult for a process that exited on its own

        Raises:
            CommandTimeout: The process was killed at the timeout
            ExecError: The process could not start or failed under
                the exit policy
        """
        argv = [command, *args]
        timeout = self.timeout if timeout is None else timeout
        policy = policy or self.policy
        env = {**os.environ, **self.env} if self.env else None

        logger.debug(
            "Subprocess starting",
            command=command,
            argc=len(args),
            cwd=str(cwd) if cwd else None,
            timeout=timeout,
        )

        start = time.monotonic()
        try:
            process = subprocess.Popen(  # noqa: S603
                argv,
                cwd=cwd,
                env=env,
                stdin=subprocess.PIPE if input is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                shell=False,
            )
        except OSError as e:
            logger.error(
                "Subprocess failed to start", command=command, error=str(e)
            )
            raise ExecError(command, f"cannot execute: {e}") from e

        logger.spew("Subprocess started", command=command, pid=process.pid)

        try:
            stdout, stderr = process.communicate(
                input=input.encode("utf-8") if input is not None else None,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            process.kill()
            process.communicate()
            logger.warn(
                "Subprocess timed out and was killed",
                command=command,
                pid=process.pid,
                timeout=timeout,
            )
            raise CommandTimeout(command, timeout) from None

        out, out_cut = _decode(stdout, self.max_output_bytes)
        err, err_cut = _decode(stderr, self.max_output_bytes)
        result = ExecResult(
            command=command,
            args=list(args),
            returncode=process.returncode,
            stdout=out,
            stderr=err,
            truncated=out_cut or err_cut,
            duration=time.monotonic() - start,
        )

        logger.debug(
            "Subprocess finished",
            command=command,
            returncode=result.returncode,
            stdout_bytes=len(stdout or b""),
            stderr_bytes=len(stderr or b""),
            truncated=result.truncated,
        )

        if result.success or not check:
            return result
        if policy is ExitPolicy.ACCEPT_WITH_OUTPUT and result.has_output:
            logger.debug(
                "Non-zero exit accepted because output was produced",
                command=command,
                returncode=result.returncode,
            )
            return result
        raise ExecError(
            command,
            _failure_summary(result),
            returncode=result.returncode,
            stderr=result.stderr,
        )


def _failure_summary(result: ExecResult) -> str:
    detail = result.stderr.strip().splitlines()
    first = detail[0][:200] if detail else "no output"
    return f"exit code {result.returncode}: {first}"
