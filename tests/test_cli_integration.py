from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

SRC_DIR = Path(__file__).resolve().parents[1] / "src"


def _write_config(path: Path, data: dict[str, object]) -> Path:
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def _run_cli(*args: str, cwd: Path) -> subprocess.CompletedProcess[str]:
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(SRC_DIR), env.get("PYTHONPATH")]))
    env["COLUMNS"] = "200"
    return subprocess.run(
        [sys.executable, "-m", "scaffolder.cli", *args],
        capture_output=True,
        text=True,
        check=False,
        cwd=cwd,
        env=env,
        stdin=subprocess.DEVNULL,
    )


def _exit(code: int) -> str:
    return f'"{sys.executable}" -c "import sys; sys.exit({code})"'


def test_cli_run_dry_run_returns_zero(tmp_path: Path) -> None:
    config = _write_config(
        tmp_path / "scaffold.json",
        {
            "tasks": [
                {"id": "src", "type": "mkdir", "config": {"path": "src"}},
                {
                    "id": "readme",
                    "type": "write",
                    "dependencies": ["src"],
                    "config": {"file": "src/README.md", "template": "hello\n"},
                },
            ]
        },
    )
    workdir = tmp_path / "out"
    workdir.mkdir()

    proc = _run_cli(
        "run", str(config), "--dry-run", "--yes", "--workdir", str(workdir), cwd=tmp_path
    )
    assert proc.returncode == 0, proc.stdout + proc.stderr
    assert "Dry Run" in proc.stdout
    assert "readme" in proc.stdout
    assert "+hello" in proc.stdout
    assert list(workdir.iterdir()) == []


def test_cli_run_required_failure_returns_one_but_runs_dependents(tmp_path: Path) -> None:
    config = _write_config(
        tmp_path / "scaffold.json",
        {
            "tasks": [
                {
                    "id": "a",
                    "type": "write",
                    "dependencies": ["b"],
                    "config": {"file": "a.txt", "template": "a"},
                },
                {"id": "b", "type": "exec", "config": {"command": _exit(1)}},
            ]
        },
    )
    report = tmp_path / "report.md"

    proc = _run_cli(
        "run",
        str(config),
        "--yes",
        "--workdir",
        str(tmp_path),
        "--report",
        str(report),
        cwd=tmp_path,
    )
    assert proc.returncode == 1, proc.stdout + proc.stderr
    assert "Required tasks failed" in proc.stdout
    assert (tmp_path / "a.txt").read_text(encoding="utf-8") == "a"
    text = report.read_text(encoding="utf-8")
    assert "- status: **FAILED**" in text
    assert "### b (required)" in text


def test_cli_run_optional_failure_returns_zero(tmp_path: Path) -> None:
    config = _write_config(
        tmp_path / "scaffold.json",
        {
            "tasks": [
                {"id": "lint", "type": "exec", "required": False, "config": {"command": _exit(3)}},
                {"id": "src", "type": "mkdir", "config": {"path": "src"}},
            ]
        },
    )
    proc = _run_cli("run", str(config), "--yes", "--workdir", str(tmp_path), cwd=tmp_path)
    assert proc.returncode == 0, proc.stdout + proc.stderr
    assert "Optional tasks failed" in proc.stdout
    assert (tmp_path / "src").is_dir()


def test_cli_run_uses_prompt_defaults_with_yes(tmp_path: Path) -> None:
    config = _write_config(
        tmp_path / "scaffold.json",
        {
            "prompts": [{"id": "name", "type": "input", "message": "Name?", "default": "demo"}],
            "tasks": [{"id": "pkg", "type": "mkdir", "config": {"path": "{{name}}"}}],
        },
    )
    proc = _run_cli("run", str(config), "-y", "--workdir", str(tmp_path), cwd=tmp_path)
    assert proc.returncode == 0, proc.stdout + proc.stderr
    assert (tmp_path / "demo").is_dir()


def test_cli_run_circular_extends_returns_one(tmp_path: Path) -> None:
    _write_config(tmp_path / "base.json", {"extends": "scaffold.json"})
    config = _write_config(tmp_path / "scaffold.json", {"extends": "base.json"})
    proc = _run_cli("run", str(config), "--yes", "--workdir", str(tmp_path), cwd=tmp_path)
    assert proc.returncode == 1
    assert "circular configuration inheritance" in proc.stdout


def test_cli_run_invalid_workdir_returns_two(tmp_path: Path) -> None:
    config = _write_config(tmp_path / "scaffold.json", {"tasks": []})
    proc = _run_cli("run", str(config), "--workdir", str(tmp_path / "missing"), cwd=tmp_path)
    assert proc.returncode == 2
    assert "Invalid workdir" in proc.stdout


def test_cli_validate_prints_execution_order(tmp_path: Path) -> None:
    config = _write_config(
        tmp_path / "scaffold.json",
        {
            "variables": [{"id": "year", "value": 2026}],
            "tasks": [
                {
                    "id": "readme",
                    "type": "write",
                    "dependencies": ["src"],
                    "config": {"file": "README.md", "template": "x"},
                },
                {"id": "src", "type": "mkdir", "config": {"path": "src"}},
            ],
        },
    )
    proc = _run_cli("validate", str(config), cwd=tmp_path)
    assert proc.returncode == 0, proc.stdout + proc.stderr
    assert "Execution Order" in proc.stdout
    assert proc.stdout.index("src") < proc.stdout.index("readme")
    assert "Valid: 2 task(s), 1 variable(s), 0 prompt(s)" in proc.stdout


def test_cli_validate_reports_cycles(tmp_path: Path) -> None:
    config = _write_config(
        tmp_path / "scaffold.json",
        {
            "tasks": [
                {"id": "a", "type": "mkdir", "dependencies": ["b"], "config": {"path": "a"}},
                {"id": "b", "type": "mkdir", "dependencies": ["a"], "config": {"path": "b"}},
            ]
        },
    )
    proc = _run_cli("validate", str(config), cwd=tmp_path)
    assert proc.returncode == 1
    assert "circular task dependency" in proc.stdout


def test_cli_run_names_failed_tasks(tmp_path: Path) -> None:
    config = _write_config(
        tmp_path / "scaffold.json",
        {
            "tasks": [
                {
                    "id": "install",
                    "name": "Install dependencies",
                    "type": "exec",
                    "config": {"command": _exit(1)},
                },
                {
                    "id": "lint",
                    "name": "Lint [strict]",
                    "type": "exec",
                    "required": False,
                    "config": {"command": _exit(2)},
                },
            ]
        },
    )
    proc = _run_cli("run", str(config), "--yes", "--workdir", str(tmp_path), cwd=tmp_path)
    assert proc.returncode == 1, proc.stdout + proc.stderr
    assert "Required tasks failed: Install dependencies (install)" in proc.stdout
    assert "Optional tasks failed: Lint [strict] (lint)" in proc.stdout
