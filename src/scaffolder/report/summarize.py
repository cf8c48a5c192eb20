from __future__ import annotations

from scaffolder.run.model import RunSummary

_PROBLEM_STATUSES = {"FAILED"}


def build_summary(summary: RunSummary) -> dict[str, object]:
    task_rows: list[dict[str, object]] = []
    problem_rows: list[dict[str, object]] = []
    diff_rows: list[dict[str, object]] = []

    for task_id, record in summary.tasks.items():
        task_rows.append(
            {
                "id": task_id,
                "name": record.name,
                "type": record.type,
                "status": record.status,
                "required": record.required,
                "duration_sec": record.duration_sec,
            }
        )
        if record.status in _PROBLEM_STATUSES:
            problem_rows.append(
                {
                    "id": task_id,
                    "name": record.name,
                    "required": record.required,
                    "error": record.error or "",
                }
            )
        if record.diff:
            diff_rows.append({"id": task_id, "diff": record.diff})

    return {
        "run": {
            "name": summary.name,
            "status": "SUCCESS" if summary.ok else "FAILED",
            "dry_run": summary.dry_run,
            "started": summary.started_at,
            "ended": summary.ended_at,
            "workdir": summary.workdir,
            "completed": summary.completed,
        },
        "tasks": task_rows,
        "problems": problem_rows,
        "diffs": diff_rows,
    }
