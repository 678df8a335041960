"""Result of one subprocess execution."""

from datetime import datetime

from pydantic import BaseModel, Field


class ExecResult(BaseModel):
    """Captured outcome of a completed (not timed out) subprocess."""

    command: str = Field(description="Executable that was run")
    args: list[str] = Field(
        default_factory=list, description="Arguments after the executable"
    )
    returncode: int = Field(description="Process exit code")
    stdout: str = Field(default="", description="Captured standard output")
    stderr: str = Field(default="", description="Captured standard error")
    truncated: bool = Field(
        default=False,
        description="Whether either stream was cut at the output cap",
    )
    duration: float = Field(default=0.0, description="Wall time in seconds")
    timestamp: datetime = Field(default_factory=datetime.now)

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def has_output(self) -> bool:
        return bool(self.stdout.strip())
