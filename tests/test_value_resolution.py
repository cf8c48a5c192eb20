from __future__ import annotations

import sys
from pathlib import Path

import pytest

from scaffolder.config.schema import Conditional, Exec, ExecFile, Interpolate, Static
from scaffolder.values import resolve as resolve_module
from scaffolder.values.resolve import coerce_output, resolve_value
from scaffolder.values.script import build_command, detect_runtime


def _py(code: str) -> str:
    return f'"{sys.executable}" -c "{code}"'


@pytest.mark.asyncio
async def test_literal_and_static_values() -> None:
    assert await resolve_value("plain", id="v") == "plain"
    assert await resolve_value(3, id="v") == 3
    assert await resolve_value(Static({"k": 1}), id="v") == {"k": 1}
    assert await resolve_value({"type": "static", "value": False}, id="v") is False


@pytest.mark.asyncio
async def test_exec_output_is_coerced_to_number() -> None:
    assert await resolve_value({"type": "exec", "value": "echo 42"}, id="v") == 42


@pytest.mark.asyncio
async def test_exec_interpolates_command() -> None:
    spec = Exec(_py("print('{{name}}'.upper())"))
    assert await resolve_value(spec, id="v", context={"name": "demo"}) == "DEMO"


@pytest.mark.asyncio
async def test_exec_failure_resolves_to_none(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level("WARNING", logger="scaffolder")
    spec = Exec(_py("import sys; sys.exit(2)"))
    assert await resolve_value(spec, id="broken") is None
    assert any("broken" in record.getMessage() for record in caplog.records)


@pytest.mark.asyncio
async def test_exec_timeout_resolves_to_none(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(resolve_module, "DEFAULT_EXEC_TIMEOUT_SEC", 0.2)
    spec = Exec(_py("import time; time.sleep(5)"))
    assert await resolve_value(spec, id="slow") is None


@pytest.mark.asyncio
async def test_interpolate_substitutes_and_blanks_missing_keys() -> None:
    spec = {"type": "interpolate", "value": "{{a}}-{{b}}"}
    assert await resolve_value(spec, id="v", context={"a": "x", "b": "y"}) == "x-y"
    assert await resolve_value(spec, id="v", context={"a": "x"}) == "x-"


@pytest.mark.asyncio
async def test_interpolate_without_context_returns_template() -> None:
    assert await resolve_value(Interpolate("{{a}}"), id="v") == "{{a}}"


@pytest.mark.asyncio
async def test_interpolate_nested_paths_and_value_formatting() -> None:
    spec = Interpolate("{{project.name}} ts={{useTs}} n={{count}}")
    ctx = {"project": {"name": "demo"}, "useTs": True, "count": 2.0}
    assert await resolve_value(spec, id="v", context=ctx) == "demo ts=true n=2"


@pytest.mark.asyncio
async def test_conditional_picks_branch() -> None:
    spec = {"type": "conditional", "condition": "x===1", "ifTrue": "yes", "ifFalse": "no"}
    assert await resolve_value(spec, id="v", context={"x": 1}) == "yes"
    assert await resolve_value(spec, id="v", context={"x": 2}) == "no"


@pytest.mark.asyncio
async def test_conditional_branches_are_resolved_recursively() -> None:
    spec = Conditional(
        condition="lang === 'ts'",
        if_true=Interpolate("{{name}}.ts"),
        if_false=Conditional("lang === 'py'", Static("main.py"), Static(None)),
    )
    assert await resolve_value(spec, id="v", context={"lang": "ts", "name": "index"}) == "index.ts"
    assert await resolve_value(spec, id="v", context={"lang": "py", "name": "x"}) == "main.py"
    assert await resolve_value(spec, id="v", context={"lang": "go", "name": "x"}) is None


@pytest.mark.asyncio
async def test_invalid_raw_spec_resolves_to_none() -> None:
    assert await resolve_value({"type": "nope"}, id="v") is None


@pytest.mark.parametrize(
    ("output", "expected"),
    [
        ('{"a": 1}', {"a": 1}),
        ("[1, 2]", [1, 2]),
        ("{not json", "{not json"),
        ("-7", -7),
        ("+3.25", 3.25),
        ("true", True),
        ("false", False),
        ("True", "True"),
        ("  hello \n", "hello"),
        ("1.2.3", "1.2.3"),
    ],
)
def test_coerce_output(output: str, expected: object) -> None:
    assert coerce_output(output) == expected


@pytest.mark.asyncio
async def test_exec_file_runs_local_python_script(tmp_path: Path) -> None:
    script = tmp_path / "value.py"
    script.write_text(
        "import os, sys\nprint(sys.argv[1] + '-' + os.environ['SUFFIX'])\n", encoding="utf-8"
    )
    spec = ExecFile(file="value.py", args=["{{name}}"], parameters={"SUFFIX": "{{kind}}"})
    value = await resolve_value(
        spec,
        id="v",
        context={"name": "demo", "kind": "lib"},
        source_url=str(tmp_path / "scaffold.json"),
    )
    assert value == "demo-lib"


@pytest.mark.asyncio
async def test_exec_file_missing_script_resolves_to_none(tmp_path: Path) -> None:
    spec = ExecFile(file="missing.py")
    assert await resolve_value(spec, id="v", source_url=str(tmp_path / "scaffold.json")) is None


@pytest.mark.asyncio
async def test_exec_file_remote_script_is_removed_after_run(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    from scaffolder.values import script as script_module

    created: list[str] = []
    original = script_module._write_temp_script

    def _tracking_write(text: str, suffix: str) -> str:
        path = original(text, suffix)
        created.append(path)
        return path

    monkeypatch.setattr(script_module, "fetch_url", lambda url: "print('remote')\n")
    monkeypatch.setattr(script_module, "_write_temp_script", _tracking_write)
    spec = ExecFile(file="https://example.com/scripts/value.py")
    assert await resolve_value(spec, id="v") == "remote"
    assert len(created) == 1
    assert not Path(created[0]).exists()


def test_runtime_detection_and_commands() -> None:
    assert detect_runtime("setup.mjs") == "node"
    assert detect_runtime("https://host/x/setup.sh?raw=1") == "bash"
    assert detect_runtime("setup.ps1") == "pwsh"
    assert build_command("pwsh", "s.ps1", ["a"]) == ["pwsh", "-NoProfile", "-File", "s.ps1", "a"]
    assert build_command("python", "s.py", [])[0] == sys.executable
