from __future__ import annotations

from typing import Any


def _bool_mark(value: bool) -> str:
    return "yes" if value else "no"


def render_markdown(summary: dict[str, Any]) -> str:
    run = summary["run"]
    tasks = summary["tasks"]
    problems = summary["problems"]
    diffs = summary["diffs"]

    lines: list[str] = []
    lines.append("# Scaffold Report")
    lines.append("")
    lines.append("## Overview")
    lines.append("")
    lines.append(f"- configuration: {run['name'] or '(unnamed)'}")
    lines.append(f"- status: **{run['status']}**")
    lines.append(f"- dry_run: {_bool_mark(run['dry_run'])}")
    lines.append(f"- started: {run['started']}")
    lines.append(f"- ended: {run['ended']}")
    lines.append(f"- workdir: `{run['workdir']}`")
    lines.append(f"- completed: {run['completed']}")
    lines.append("")
    lines.append("## Tasks")
    lines.append("")
    if tasks:
        lines.append("| id | type | status | required | duration_sec |")
        lines.append("|---|---|---|---:|---:|")
        for row in tasks:
            lines.append(
                f"| {row['id']} | {row['type']} | {row['status']} | "
                f"{_bool_mark(row['required'])} | {row['duration_sec'] if row['duration_sec'] is not None else '-'} |"
            )
    else:
        lines.append("No tasks.")
    lines.append("")
    lines.append("## Failures")
    lines.append("")
    if problems:
        for row in problems:
            kind = "required" if row["required"] else "optional"
            lines.append(f"### {row['name']} ({kind})")
            lines.append("```")
            lines.extend(row["error"].splitlines() or ["(no message)"])
            lines.append("```")
            lines.append("")
    else:
        lines.append("No failed tasks.")
        lines.append("")
    if diffs:
        lines.append("## Planned Changes")
        lines.append("")
        for row in diffs:
            lines.append(f"### {row['id']}")
            lines.append("```diff")
            lines.extend(row["diff"].rstrip("\n").splitlines())
            lines.append("```")
            lines.append("")
    return "\n".join(lines)
