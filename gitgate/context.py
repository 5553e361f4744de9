from __future__ import annotations

import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from gitgate.config_loader import GitGateConfig
from gitgate.event_bus import EventBus, GateEvent


class RunContext(BaseModel):
    """Everything one command invocation needs. Built once, never mutated."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    command: str
    repo_root: Path
    git_dir: Path
    config: GitGateConfig
    run_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    started_at: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    bus: EventBus = Field(default_factory=EventBus, exclude=True)

    def emit(self, event_type: str, source: str, payload: dict[str, Any] | None = None) -> GateEvent:
        return self.bus.emit(
            event_type=event_type,
            source=source,
            payload={"run_id": self.run_id, "command": self.command, **(payload or {})},
        )

    def resolve(self, relative: str) -> Path:
        """Resolve a config path relative to the repo root."""
        p = Path(relative)
        return p if p.is_absolute() else self.repo_root / p

    def resolve_git(self, relative: str) -> Path:
        """Resolve a config path relative to the git dir."""
        p = Path(relative)
        return p if p.is_absolute() else self.git_dir / p
