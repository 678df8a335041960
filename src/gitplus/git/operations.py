"""Mutating repository operations used by conflict resolution."""

from __future__ import annotations

import contextlib
import os
import stat
import tempfile
from collections.abc import Sequence
from pathlib import Path
from typing import Literal

from gitplus.core.log import logger
from gitplus.git.repository import RepositoryHandle


class GitOperations:
    """Writes to the working tree and index of one repository.

    Every path is re-validated through the handle at the moment of the
    write, whatever checks the caller already made.
    """

    def __init__(self, handle: RepositoryHandle):
        self.handle = handle

    def write_file(self, path: str, content: str) -> Path:
        """Atomically replace a file inside the repository.

        The new content is written to a temporary file in the same
        directory and renamed over the target, keeping its mode.
        """
        target = self.handle.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        mode = None
        with contextlib.suppress(FileNotFoundError):
            mode = stat.S_IMODE(target.stat().st_mode)

        fd, tmp_name = tempfile.mkstemp(
            dir=target.parent, prefix=f".{target.name}.", suffix=".gitplus"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(content)
            if mode is not None:
                os.chmod(tmp_name, mode)
            os.replace(tmp_name, target)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
            raise

        logger.info(
            "Wrote resolved file", path=path, bytes=len(content.encode())
        )
        return target

    def stage(self, paths: Sequence[str]) -> None:
        if paths:
            self.handle.git("add", paths=list(paths))
            logger.debug("Staged files", count=len(paths))

    def take_side(self, path: str, side: Literal["ours", "theirs"]) -> None:
        """Resolve a conflicted file by keeping one side whole."""
        if side not in ("ours", "theirs"):
            raise ValueError(f"side must be 'ours' or 'theirs', not {side!r}")
        self.handle.git("checkout", options=[f"--{side}"], paths=[path])
        self.stage([path])
        logger.info("Took one side of conflict", path=path, side=side)

    def abort_merge(self) -> None:
        self.handle.git("merge", options=["--abort"])
        logger.warn("Merge aborted")

    def conclude_merge(self) -> str:
        """Commit the staged merge with git's prepared message.

        Returns:
            SHA of the new commit
        """
        self.handle.git("commit", options=["--no-edit"])
        sha = self.handle.git("rev-parse", options=["HEAD"]).stdout.strip()
        logger.info("Merge concluded", commit=sha)
        return sha
