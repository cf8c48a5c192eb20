from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

TaskStatus = Literal["PENDING", "DISABLED", "SKIPPED", "EXECUTING", "SUCCEEDED", "FAILED"]
TASK_STATUS_VALUES: set[str] = {
    "PENDING",
    "DISABLED",
    "SKIPPED",
    "EXECUTING",
    "SUCCEEDED",
    "FAILED",
}


@dataclass(slots=True)
class TaskRecord:
    id: str
    name: str
    type: str
    status: TaskStatus = "PENDING"
    required: bool = True
    error: str | None = None
    diff: str | None = None
    started_at: str | None = None
    ended_at: str | None = None
    duration_sec: float | None = None

    @property
    def label(self) -> str:
        """The task name, followed by its id when the two differ."""
        return self.name if self.name == self.id else f"{self.name} ({self.id})"

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "status": self.status,
            "required": self.required,
            "error": self.error,
            "diff": self.diff,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "duration_sec": self.duration_sec,
        }


@dataclass(slots=True)
class RunSummary:
    name: str | None
    dry_run: bool
    workdir: str
    started_at: str
    ended_at: str | None = None
    tasks: dict[str, TaskRecord] = field(default_factory=dict)
    completed: int = 0

    @property
    def failed_required(self) -> list[str]:
        return [
            record.label
            for record in self.tasks.values()
            if record.status == "FAILED" and record.required
        ]

    @property
    def failed_optional(self) -> list[str]:
        return [
            record.label
            for record in self.tasks.values()
            if record.status == "FAILED" and not record.required
        ]

    @property
    def ok(self) -> bool:
        return not self.failed_required

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "dry_run": self.dry_run,
            "workdir": self.workdir,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "completed": self.completed,
            "ok": self.ok,
            "failed_required": self.failed_required,
            "tasks": {task_id: record.to_dict() for task_id, record in self.tasks.items()},
        }
