"""Tests for the command-line interface."""

import io
import json

import pytest
from rich.console import Console

from conftest import MODRINTH, make_row, read_csv, write_csv
from modmanager.cli import build_parser, main, resolve_settings
from modmanager.settings import ENV_VARS
from modmanager.util.cache import CacheMode


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=200, color_system=None)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({
        "api_response_folder": str(tmp_path / "apiresponse"),
        "download_folder": str(tmp_path / "download"),
        "retry_delay": 0,
        "max_retries": 0,
    }), encoding="utf-8")
    return path


def run(console, config_file, *argv, session=None) -> int:
    return main([*argv, "--config", str(config_file)], session=session, console=console)


def output(console) -> str:
    return console.file.getvalue()


def test_options_before_and_after_command(tmp_path):
    args = build_parser().parse_args(["--offline", "validate", "--database-file", "x.csv"])
    settings = resolve_settings(args)
    assert settings.cache_mode is CacheMode.CACHED_ONLY
    assert settings.database_file == "x.csv"

    args = build_parser().parse_args(["validate", "--use-cached-responses", "--latest-ceiling", "1.21.5",
                                      "--config", str(tmp_path / "none.json")])
    settings = resolve_settings(args)
    assert settings.cache_mode is CacheMode.LIVE
    assert settings.latest_game_version_ceiling == "1.21.5"


def test_list(console, config_file, database_file):
    assert run(console, config_file, "list", "--database-file", str(database_file)) == 0
    text = output(console)
    assert "Mods (2)" in text
    assert "fabric-api" in text and "sodium" in text


def test_missing_database(console, config_file, tmp_path):
    assert run(console, config_file, "list", "--database-file", str(tmp_path / "nope.csv")) == 1


def test_validate_writes_database_and_summary(console, config_file, database_file, modrinth_session, tmp_path):
    summary = tmp_path / "summary.md"

    code = run(console, config_file, "validate", "--database-file", str(database_file),
               "--summary-file", str(summary), session=modrinth_session)

    assert code == 0
    columns, rows = read_csv(database_file)
    assert "Notes" in columns
    assert rows[0]["NextVersion"] == "0.128.1+1.21.6"
    assert rows[0]["CurrentVersion"] == "0.127.0+1.21.5"
    assert "Update Summary" in output(console)
    markdown = summary.read_text(encoding="utf-8")
    assert markdown.startswith("## Mod Update Summary")
    assert "| Updated | 2 |" in markdown
    assert (tmp_path / "apiresponse" / "modrinth").is_dir()


def test_update_moves_current(console, config_file, tmp_path, modrinth_session):
    path = write_csv(tmp_path / "modlist.csv", [
        make_row(ID="fabric-api", CurrentVersion="0.126.0+1.21.5", CurrentVersionUrl="u",
                 CurrentGameVersion="1.21.5"),
    ])

    assert run(console, config_file, "update", "--database-file", str(path), session=modrinth_session) == 0

    _, rows = read_csv(path)
    assert rows[0]["CurrentVersion"] == "0.127.0+1.21.5"


def test_offline_without_cache_leaves_database_alone(console, config_file, database_file, session):
    before = database_file.read_bytes()

    code = run(console, config_file, "validate", "--offline", "--database-file", str(database_file),
               session=session)

    assert code == 0
    assert session.calls == []
    assert database_file.read_bytes() == before


def test_curseforge_rows_need_a_key(console, config_file, tmp_path, session):
    path = write_csv(tmp_path / "modlist.csv", [make_row(ID="jei", ApiSource="curseforge")])
    assert run(console, config_file, "validate", "--database-file", str(path), session=session) == 1
    assert session.calls == []


def test_add_and_remove(console, config_file, database_file, session):
    url = "https://example.com/files/custom-1.0.jar"

    assert run(console, config_file, "add", url, "--field", "Notes=manual",
               "--database-file", str(database_file)) == 0
    _, rows = read_csv(database_file)
    assert [r["ID"] for r in rows] == ["fabric-api", "sodium", "custom-1.0"]
    assert rows[2]["Notes"] == "manual"
    assert rows[2]["ApiSource"] == "direct"

    assert run(console, config_file, "add", url, "--database-file", str(database_file)) == 1

    assert run(console, config_file, "remove", "custom-1.0", "--database-file", str(database_file)) == 0
    _, rows = read_csv(database_file)
    assert [r["ID"] for r in rows] == ["fabric-api", "sodium"]
    assert run(console, config_file, "remove", "custom-1.0", "--database-file", str(database_file)) == 1


def test_add_rejects_malformed_field(console, config_file, database_file):
    assert run(console, config_file, "add", "sodium", "--field", "Notes",
               "--database-file", str(database_file)) == 1


def test_download_mods(console, config_file, tmp_path, session):
    path = write_csv(tmp_path / "modlist.csv", [
        make_row(ID="lithium", CurrentGameVersion="1.21.5", CurrentVersionUrl="https://cdn.example/lithium.jar"),
    ])
    session.add("https://cdn.example/lithium.jar", content=b"jar")

    assert run(console, config_file, "download-mods", "--database-file", str(path), session=session) == 0

    assert (tmp_path / "download" / "1.21.5" / "mods" / "lithium.jar").read_bytes() == b"jar"
    assert "Downloaded 1" in output(console)


def test_download_validates_first(console, config_file, tmp_path, modrinth_session):
    path = write_csv(tmp_path / "modlist.csv", [
        make_row(ID="sodium", CurrentVersion="mc1.21.5-0.6.13-fabric", CurrentGameVersion="1.21.5"),
    ])
    jar_url = "https://cdn.modrinth.com/data/x/versions/mc1.21.5-0.6.13-fabric/mod-mc1.21.5-0.6.13-fabric.jar"
    modrinth_session.add(jar_url, content=b"sodium")

    assert run(console, config_file, "download", "--database-file", str(path), session=modrinth_session) == 0

    assert modrinth_session.calls_to(f"{MODRINTH}/project/sodium/version") == 1
    assert (tmp_path / "download" / "1.21.5" / "mods" / "mod-mc1.21.5-0.6.13-fabric.jar").exists()


def test_start_server_without_jar(console, config_file, database_file):
    assert run(console, config_file, "start-server", "--database-file", str(database_file)) == 1


def test_clear_cache(console, config_file, tmp_path):
    stored = tmp_path / "apiresponse" / "modrinth" / "key.json"
    stored.parent.mkdir(parents=True)
    stored.write_text("{}", encoding="utf-8")

    assert run(console, config_file, "clear-cache") == 0
    assert not stored.exists()


def test_config_masks_secrets_and_saves(console, config_file, monkeypatch):
    monkeypatch.setenv("CURSEFORGE_API_KEY", "very-secret")

    assert run(console, config_file, "config", "--save") == 0

    text = output(console)
    assert "curseforge_api_key = ***" in text
    assert "very-secret" not in text
    saved = json.loads(config_file.read_text(encoding="utf-8"))
    assert "curseforge_api_key" not in saved
    assert saved["max_retries"] == 0
