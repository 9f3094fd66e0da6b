from __future__ import annotations

import json
from pathlib import Path

import pytest

from tuizer.command import ManifestError
from tuizer.local.manifest import ManifestPicker


def test_missing_directory_is_reported(tmp_path: Path) -> None:
    picker = ManifestPicker(tmp_path / "nowhere")
    with pytest.raises(ManifestError) as info:
        picker.list_manifests()
    assert "nowhere" in str(info.value)


def test_directory_without_manifests_is_reported(tmp_path: Path) -> None:
    (tmp_path / "notes.txt").write_text("not a manifest")
    with pytest.raises(ManifestError):
        ManifestPicker(tmp_path).list_manifests()


def test_only_manifest_files_are_listed(tmp_path: Path) -> None:
    for name in ("b.yaml", "a.json", "c.yml", "overrides.txt"):
        (tmp_path / name).write_text("{}")
    (tmp_path / "logs.json").mkdir()

    names = [path.name for path in ManifestPicker(tmp_path).list_manifests()]

    assert names == ["a.json", "b.yaml", "c.yml"]


def test_yaml_manifest_is_loaded(tmp_path: Path) -> None:
    path = tmp_path / "dev.yaml"
    path.write_text(
        "name: Development\n"
        "commands:\n"
        "  - command: ls\n"
        "    parameters: ['-l', {parameter: '--color=$'}]\n"
        "    nameAlias: list\n"
    )

    manifest = ManifestPicker(tmp_path).load_manifest(path)

    assert manifest.name == "Development"
    assert manifest.commands == [
        {"command": "ls", "parameters": ["-l", {"parameter": "--color=$"}], "nameAlias": "list"},
    ]


def test_json_manifest_is_loaded(tmp_path: Path) -> None:
    path = tmp_path / "ops.json"
    path.write_text(json.dumps({"commands": [{"command": "uptime"}]}))

    manifest = ManifestPicker(tmp_path).load_manifest(path)

    assert manifest.name is None
    assert manifest.commands == [{"command": "uptime"}]


def test_empty_manifest_has_no_commands(tmp_path: Path) -> None:
    path = tmp_path / "empty.yml"
    path.write_text("")
    assert ManifestPicker(tmp_path).load_manifest(path).commands == []


@pytest.mark.parametrize(
    ("name", "content"),
    [
        ("broken.yaml", "commands: [unterminated"),
        ("broken.json", "{not json"),
        ("wrong.yaml", "commands: ls"),
    ],
)
def test_invalid_manifests_are_rejected(tmp_path: Path, name: str, content: str) -> None:
    path = tmp_path / name
    path.write_text(content)
    with pytest.raises(ManifestError) as info:
        ManifestPicker(tmp_path).load_manifest(path)
    assert info.value.data == str(path)


def test_unreadable_manifest_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ManifestError):
        ManifestPicker(tmp_path).load_manifest(tmp_path / "missing.yaml")
