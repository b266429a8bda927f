"""Structured JSONL run log.

Each decay run writes one line per event (run_start, scan, batch_commit,
batch_failed, run_end, run_aborted), all tagged with the run id.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

DEFAULT_LOG_DIR = Path.home() / ".innerdecay" / "logs"
DEFAULT_LOG_FILE = "decay.jsonl"


@dataclass
class RunEvent:
    """One line of the run log."""

    timestamp: str
    event: str
    run_id: str | None = None
    duration_ms: float | None = None
    scanned: int | None = None
    mutated: int | None = None
    batch_index: int | None = None
    writes: int | None = None
    dry_run: bool = False
    error: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serializable form without unset fields.

        ``dry_run`` is only written when true.
        """
        return {
            key: value
            for key, value in asdict(self).items()
            if value not in (None, {}) and not (key == "dry_run" and value is False)
        }


class JSONLLogger:
    """Appends run events to a JSONL file, rotating it past a size limit."""

    def __init__(
        self,
        log_dir: str | Path | None = None,
        filename: str = DEFAULT_LOG_FILE,
        max_size_mb: float = 10.0,
    ) -> None:
        self.log_dir = Path(log_dir) if log_dir is not None else DEFAULT_LOG_DIR
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.filename = filename
        self.max_size_bytes = int(max_size_mb * 1024 * 1024)
        self._run_id: str | None = None

    @property
    def log_path(self) -> Path:
        return self.log_dir / self.filename

    def set_run_id(self, run_id: str | None) -> None:
        """Tag every following event with ``run_id``."""
        self._run_id = run_id

    def _rotate(self) -> None:
        path = self.log_path
        if not path.exists() or path.stat().st_size < self.max_size_bytes:
            return
        suffix = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")
        path.rename(self.log_dir / f"{path.stem}_{suffix}{path.suffix}")

    def _append(self, event: RunEvent) -> None:
        self._rotate()
        line = json.dumps(event.to_dict(), default=str)
        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(line + "\n")

    def log(
        self,
        event: str,
        *,
        run_id: str | None = None,
        duration_ms: float | None = None,
        scanned: int | None = None,
        mutated: int | None = None,
        batch_index: int | None = None,
        writes: int | None = None,
        dry_run: bool = False,
        error: str | None = None,
        **extra: Any,
    ) -> None:
        """Write one event. Unknown keyword arguments go to ``extra``."""
        self._append(
            RunEvent(
                timestamp=datetime.now(timezone.utc).isoformat(),
                event=event,
                run_id=run_id or self._run_id,
                duration_ms=duration_ms,
                scanned=scanned,
                mutated=mutated,
                batch_index=batch_index,
                writes=writes,
                dry_run=dry_run,
                error=error,
                extra=dict(extra),
            )
        )

    def log_scan(self, scanned: int, *, duration_ms: float | None = None) -> None:
        self.log("scan", scanned=scanned, duration_ms=duration_ms)

    def log_batch_commit(self, batch_index: int, mutations: int, writes: int) -> None:
        self.log("batch_commit", batch_index=batch_index, mutated=mutations, writes=writes)

    def log_batch_failed(self, batch_index: int, lost: int, error: str) -> None:
        self.log("batch_failed", batch_index=batch_index, error=error, lost=lost)

    def log_run_end(
        self,
        scanned: int,
        mutated: int,
        duration_ms: float,
        *,
        dry_run: bool = False,
        error: str | None = None,
        **extra: Any,
    ) -> None:
        """Write the closing event of a run."""
        self.log(
            "run_end",
            scanned=scanned,
            mutated=mutated,
            duration_ms=duration_ms,
            dry_run=dry_run,
            error=error,
            **extra,
        )


_run_log: JSONLLogger | None = None


def get_logger() -> JSONLLogger:
    """Process-wide run log, created on first use."""
    global _run_log
    if _run_log is None:
        _run_log = JSONLLogger()
    return _run_log


def configure_logger(log_dir: str | Path | None = None, max_size_mb: float = 10.0) -> JSONLLogger:
    """Replace the process-wide run log and return it."""
    global _run_log
    _run_log = JSONLLogger(log_dir=log_dir, max_size_mb=max_size_mb)
    return _run_log
