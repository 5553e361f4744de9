import json
import os
import tempfile
from pathlib import Path
from typing import List, Optional

from gitgate.event_bus import EventBus, GateEvent


class EventLog:
    """
    Collects every event emitted during one invocation and writes them
    as a single JSONL file when the invocation ends.

    Each invocation gets its own file, written to a temp name in the same
    directory and renamed into place, so concurrent hooks never share or
    half-write a log.
    """

    def __init__(self, log_dir: Path, command: str, run_id: str, event_bus: EventBus):
        self.log_dir = Path(log_dir)
        self.command = command
        self.run_id = run_id
        self._buffer: List[GateEvent] = []
        self._written: Optional[Path] = None

        event_bus.subscribe(self._buffer.append)

    @property
    def events(self) -> List[GateEvent]:
        return list(self._buffer)

    def flush(self) -> Optional[Path]:
        """Write the collected events. Only the first call writes."""
        if self._written is not None or not self._buffer:
            return self._written

        self.log_dir.mkdir(parents=True, exist_ok=True)
        stamp = self._buffer[0].timestamp.replace(":", "").replace("-", "")[:15]
        target = self.log_dir / f"{stamp}-{self.command}-{self.run_id}.jsonl"

        fd, tmp_name = tempfile.mkstemp(dir=self.log_dir, prefix=".tmp-", suffix=".jsonl")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                for event in self._buffer:
                    f.write(json.dumps(event.model_dump()) + "\n")
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        self._written = target
        return target
