from __future__ import annotations

import pytest

from scaffolder.config.merge import merge_documents, validate_unique_ids
from scaffolder.config.parse import parse_document
from scaffolder.config.schema import ConditionCheck, ConfigDocument, Static
from scaffolder.util.errors import DuplicateIdError


def _doc(data: dict[str, object], source: str) -> ConfigDocument:
    return parse_document(data, source=source)


def test_same_id_later_definition_replaces_earlier() -> None:
    merged = merge_documents(
        [
            _doc({"tasks": [{"id": "t", "name": "old"}]}, "base.json"),
            _doc({"tasks": [{"id": "t", "name": "new"}]}, "child.json"),
        ]
    )
    assert len(merged.tasks) == 1
    assert merged.tasks[0].name == "new"
    assert merged.tasks[0].source_url == "child.json"


def test_replace_drops_fields_the_override_does_not_declare() -> None:
    merged = merge_documents(
        [
            _doc(
                {
                    "tasks": [
                        {
                            "id": "t",
                            "type": "exec",
                            "description": "base",
                            "config": {"command": "echo base"},
                            "dependencies": ["x"],
                        },
                        {"id": "x", "type": "mkdir", "config": {"path": "x"}},
                    ]
                },
                "base.json",
            ),
            _doc({"tasks": [{"id": "t", "type": "exec", "config": {"command": "echo new"}}]}, "c"),
        ]
    )
    task = merged.tasks[0]
    assert task.description == ""
    assert task.dependencies == []
    assert task.config == {"command": "echo new"}


def test_merge_override_combines_fields_and_dependencies() -> None:
    merged = merge_documents(
        [
            _doc(
                {
                    "tasks": [
                        {"id": "a", "type": "mkdir", "config": {"path": "a"}},
                        {"id": "b", "type": "mkdir", "config": {"path": "b"}},
                        {
                            "id": "t",
                            "type": "exec",
                            "description": "from base",
                            "config": {"command": "echo", "cwd": "src"},
                            "dependencies": ["a"],
                        },
                    ]
                },
                "base.json",
            ),
            _doc(
                {
                    "tasks": [
                        {
                            "id": "t",
                            "override": "merge",
                            "config": {"command": "echo hi"},
                            "dependencies": ["a", "b"],
                        }
                    ]
                },
                "child.json",
            ),
        ]
    )
    task = next(t for t in merged.tasks if t.id == "t")
    assert task.type == "exec"
    assert task.description == "from base"
    assert task.config == {"command": "echo hi", "cwd": "src"}
    assert task.dependencies == ["a", "b"]
    assert task.source_url == "child.json"
    assert [t.id for t in merged.tasks] == ["a", "b", "t"]


def test_merge_override_clears_conflicting_template_fields() -> None:
    merged = merge_documents(
        [
            _doc(
                {
                    "tasks": [
                        {
                            "id": "readme",
                            "type": "write",
                            "config": {"file": "README.md", "template": "inline"},
                        }
                    ]
                },
                "base.json",
            ),
            _doc(
                {
                    "tasks": [
                        {
                            "id": "readme",
                            "override": "merge",
                            "config": {"templateFile": "readme.tpl"},
                        }
                    ]
                },
                "child.json",
            ),
        ]
    )
    assert merged.tasks[0].config == {"file": "README.md", "templateFile": "readme.tpl"}


def test_prompt_and_variable_merge() -> None:
    merged = merge_documents(
        [
            _doc(
                {
                    "prompts": [
                        {"id": "name", "type": "input", "message": "Name?", "default": "app"}
                    ],
                    "variables": [{"id": "year", "value": 2020}],
                },
                "base.json",
            ),
            _doc(
                {
                    "prompts": [{"id": "name", "override": "merge", "default": "service"}],
                    "variables": [{"id": "year", "value": 2030}],
                },
                "child.json",
            ),
        ]
    )
    prompt = merged.prompts[0]
    assert prompt.kind == "input"
    assert prompt.message == "Name?"
    assert prompt.default == Static("service")
    assert merged.variables[0].value == Static(2030)


def test_cross_kind_id_collision_names_both_kinds() -> None:
    with pytest.raises(DuplicateIdError) as exc_info:
        merge_documents(
            [
                _doc({"tasks": [{"id": "x", "type": "mkdir"}]}, "base.json"),
                _doc({"variables": [{"id": "x", "value": 1}]}, "child.json"),
            ]
        )
    assert exc_info.value.kind == "variable"
    assert exc_info.value.existing_kind == "task"
    assert "task" in str(exc_info.value) and "variable" in str(exc_info.value)


def test_validate_unique_ids_checks_prompts_too() -> None:
    doc = _doc(
        {
            "variables": [{"id": "name", "value": "v"}],
            "prompts": [{"id": "name", "type": "input", "message": "?"}],
        },
        "one.json",
    )
    with pytest.raises(DuplicateIdError) as exc_info:
        validate_unique_ids(doc.tasks, doc.variables, doc.prompts)
    assert (exc_info.value.kind, exc_info.value.existing_kind) == ("prompt", "variable")


def test_literally_disabled_document_is_skipped() -> None:
    merged = merge_documents(
        [
            _doc({"enabled": False, "tasks": [{"id": "gone", "type": "mkdir"}]}, "off.json"),
            _doc({"tasks": [{"id": "kept", "type": "mkdir"}]}, "root.json"),
        ]
    )
    assert [t.id for t in merged.tasks] == ["kept"]


def test_conditional_document_enabled_is_stamped_on_entities() -> None:
    merged = merge_documents(
        [
            _doc(
                {
                    "enabled": "useDocker",
                    "tasks": [{"id": "dockerfile", "type": "mkdir"}],
                    "variables": [{"id": "image", "value": "python"}],
                },
                "docker.json",
            ),
            _doc({"name": "root", "tasks": [{"id": "src", "type": "mkdir"}]}, "root.json"),
        ]
    )
    by_id = {t.id: t for t in merged.tasks}
    assert by_id["dockerfile"].config_enabled == ConditionCheck("useDocker")
    assert by_id["src"].config_enabled is None
    assert merged.variables[0].config_enabled == ConditionCheck("useDocker")
    assert merged.name == "root"
    assert merged.extends == []
