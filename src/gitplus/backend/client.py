"""Reasoning backend client.

Each request moves through BUILD -> SEND, and on failure either to
BACKOFF -> SEND (transient failures and timeouts, while retries
remain) or to a final error. The loop is explicit, so the number of
calls is bounded by ``max_retries + 1``.
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable

from gitplus.backend.prompt import PromptBuilder
from gitplus.backend.response import ResolutionProposal, parse_resolution
from gitplus.backend.retry import Backoff, FailureKind, classify
from gitplus.conflict.models import ConflictData
from gitplus.core.config import BackendConfig, LimitsConfig
from gitplus.core.errors import (
    BackendError,
    CommandTimeout,
    ExecError,
    GitplusError,
    PromptInjectionError,
)
from gitplus.core.log import logger
from gitplus.core.runner import ExitPolicy, Runner


class ReasoningClient:
    """Invokes the backend CLI and validates what comes back.

    Args:
        config: Command, model and retry settings
        limits: Prompt and response size caps
        runner: Subprocess runner; defaults to one that accepts a
            non-zero exit when stdout is non-empty
        sleep: Called with each backoff delay
        rng: Source of jitter
    """

    def __init__(
        self,
        config: BackendConfig | None = None,
        limits: LimitsConfig | None = None,
        runner: Runner | None = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ):
        self.config = config or BackendConfig()
        self.limits = limits or LimitsConfig()
        self.runner = runner or Runner(
            timeout=self.config.timeout,
            max_output_bytes=self.config.max_output_bytes,
            policy=ExitPolicy.ACCEPT_WITH_OUTPUT,
        )
        self.builder = PromptBuilder(self.limits)
        self.backoff = Backoff(self.config, rng)
        self._sleep = sleep

    def _args(self, prompt: str) -> list[str]:
        args = ["-p"]
        if not self.config.prompt_via_stdin:
            args.append(prompt)
        args += [
            "--model", self.config.model,
            "--output-format", self.config.output_format,
        ]
        return args

    def _call(self, prompt: str) -> str:
        result = self.runner.run(
            self.config.command,
            self._args(prompt),
            input=prompt if self.config.prompt_via_stdin else None,
            timeout=self.config.timeout,
            policy=ExitPolicy.ACCEPT_WITH_OUTPUT,
        )
        if not result.has_output:
            raise ExecError(
                self.config.command,
                "no output received",
                returncode=result.returncode,
                stderr=result.stderr,
            )
        return result.stdout

    def send(self, prompt: str) -> str:
        """Send a built prompt, retrying transient failures.

        Returns:
            Raw standard output of the first successful call

        Raises:
            BackendError: A fatal failure, or retries exhausted
        """
        max_attempts = self.config.max_retries + 1
        attempt = 0
        while True:
            try:
                with logger.span(
                    "Backend call",
                    attempt=attempt + 1,
                    max_attempts=max_attempts,
                    prompt_chars=len(prompt),
                ):
                    output = self._call(prompt)
                logger.debug(
                    "Backend call succeeded",
                    attempt=attempt + 1,
                    output_chars=len(output),
                )
                return output
            except (CommandTimeout, ExecError) as e:
                kind = classify(e)
                if kind is FailureKind.FATAL:
                    logger.error(
                        "Backend call failed",
                        attempt=attempt + 1,
                        kind=kind.value,
                        error=str(e),
                    )
                    raise BackendError(
                        f"Backend call failed: {e}", attempt + 1, kind.value
                    ) from e
                if attempt + 1 >= max_attempts:
                    logger.error(
                        "Backend retries exhausted",
                        attempts=attempt + 1,
                        kind=kind.value,
                        error=str(e),
                    )
                    raise BackendError(
                        f"Backend unavailable after {attempt + 1} "
                        f"attempt(s): {e}",
                        attempt + 1,
                        kind.value,
                    ) from e
                delay = self.backoff.delay(attempt)
                logger.warn(
                    "Backend call failed, retrying",
                    attempt=attempt + 1,
                    kind=kind.value,
                    delay=round(delay, 3),
                    error=str(e),
                )
                self._sleep(delay)
                attempt += 1

    def request_resolution(self, conflict: ConflictData) -> ResolutionProposal:
        """Ask the backend how to resolve the given conflicts.

        Raises:
            PromptInjectionError: Conflict data looks like an injection
                attempt; nothing was sent
            PromptTooLargeError: The prompt exceeds its ceiling
            BackendError: The backend could not be reached
            ParseError: The response is malformed or incomplete
        """
        hits = self.builder.find_injection(conflict)
        if hits:
            logger.error(
                "Possible prompt injection in conflict data",
                fields=sorted(hits),
                security_event=True,
            )
            raise PromptInjectionError(hits)
        prompt = self.builder.build_resolution_prompt(conflict)
        raw = self.send(prompt)
        proposal = parse_resolution(raw, self.limits)
        logger.info(
            "Backend proposal received",
            strategy=proposal.strategy,
            confidence=proposal.confidence,
            files=len(proposal.resolved_files),
        )
        return proposal

    def is_available(self) -> bool:
        """Whether the backend executable runs at all."""
        try:
            self.runner.run(
                self.config.command,
                ["--version"],
                timeout=min(self.config.timeout, 30.0),
                policy=ExitPolicy.STRICT,
            )
        except GitplusError as e:
            logger.debug("Backend not available", error=str(e))
            return False
        return True
