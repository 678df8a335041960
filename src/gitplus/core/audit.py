"""Per-run audit directories for security event flushes."""

from datetime import datetime
from pathlib import Path

from gitplus.core.log import logger


class AuditLogDir:
    """A timestamped directory holding the audit trail of one run."""

    def __init__(
        self, base_dir: Path, command: str, project_name: str | None = None
    ):
        """Create the run directory.

        Args:
            base_dir: Root of all audit directories
            command: Command that produced the events (resolve, ...)
            project_name: Optional subdirectory, usually the repository
                name
        """
        timestamp = datetime.now().strftime('%Y%m%d-%H%M%S-%f')
        if project_name:
            base_dir = base_dir / project_name
        self.run_dir = base_dir / f"{command}-{timestamp}"
        self.run_dir.mkdir(parents=True, exist_ok=True)
        self.events_file = self.run_dir / "security-events.jsonl"

    def flush(self, events) -> Path:
        """Append events as JSON lines and return the file written.

        Args:
            events: SecurityEventLog or any iterable of SecurityEvent
        """
        records = events.events() if hasattr(events, "events") else events
        count = 0
        with open(self.events_file, "a", encoding="utf-8") as f:
            for event in records:
                f.write(event.model_dump_json() + "\n")
                count += 1
        logger.info(
            "Security events flushed",
            file=str(self.events_file),
            count=count,
        )
        return self.events_file
