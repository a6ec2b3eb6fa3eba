"""Tests for server smoke test helpers (no real JVM is started)."""

import pytest

from modmanager.core import server as server_module
from modmanager.core.errors import ConfigurationError
from modmanager.core.server import (CONSOLE_LOG, DONE_PATTERN, ServerProcess, find_server_jar,
                                    recommend_jvm_args, run_smoke_test, write_eula)


class TestRecommendJvmArgs:
    def test_half_of_ram_capped(self):
        result = recommend_jvm_args(total_ram_gb=32)
        assert result["allocated_ram_gb"] == 8.0
        assert "-Xmx8192m" in result["jvm_args"]
        assert "-XX:+UseG1GC" in result["jvm_args"]

    def test_small_machine_gets_floor(self):
        result = recommend_jvm_args(total_ram_gb=2)
        assert result["allocated_ram_gb"] == 2.0
        assert result["jvm_args"][:2] == ["-Xms1024m", "-Xmx2048m"]
        assert "-XX:+UseSerialGC" in result["jvm_args"]

    def test_user_value_wins(self):
        result = recommend_jvm_args(total_ram_gb=64, user_ram_gb=6)
        assert result["allocated_ram_gb"] == 6
        assert "-Xmx6144m" in result["jvm_args"]

    def test_detects_ram(self, monkeypatch):
        monkeypatch.setattr(server_module, "detect_total_ram_gb", lambda: 12.0)
        assert recommend_jvm_args()["total_ram_gb"] == 12.0


def test_find_server_jar_prefers_launcher(tmp_path):
    assert find_server_jar(tmp_path) is None
    (tmp_path / "minecraft_server.1.21.5.jar").write_bytes(b"")
    assert find_server_jar(tmp_path).name == "minecraft_server.1.21.5.jar"
    (tmp_path / "fabric-server-mc.1.21.5-loader.0.16.14-launcher.1.0.3.jar").write_bytes(b"")
    assert find_server_jar(tmp_path).name.startswith("fabric-server-")


def test_write_eula(tmp_path):
    assert write_eula(tmp_path).read_text(encoding="utf-8") == "eula=true\n"


def test_command_line(tmp_path):
    proc = ServerProcess(tmp_path, tmp_path / "server.jar", ["-Xmx2048m"], java="/opt/java")
    assert proc.command == ["/opt/java", "-Xmx2048m", "-jar", str(tmp_path / "server.jar"), "nogui"]
    assert proc.stop() is None


def test_tail_log_finds_done_line(tmp_path):
    (tmp_path / CONSOLE_LOG).write_text(
        "[Server thread/INFO]: Preparing level\r\n"
        '[Server thread/INFO]: Done (3.21s)! For help, type "help"\r\n',
        encoding="utf-8",
    )
    proc = ServerProcess(tmp_path, tmp_path / "server.jar")

    line = proc.tail_log_for_pattern(DONE_PATTERN, timeout=0, poll_interval=0)

    assert line == '[Server thread/INFO]: Done (3.21s)! For help, type "help"'


def test_tail_log_without_match(tmp_path):
    (tmp_path / CONSOLE_LOG).write_text("starting\nDone loading mods", encoding="utf-8")
    proc = ServerProcess(tmp_path, tmp_path / "server.jar")
    assert proc.tail_log_for_pattern(DONE_PATTERN, timeout=0, poll_interval=0) is None
    assert proc.tail_log_for_pattern("loading mods$", timeout=0, poll_interval=0) == "Done loading mods"


def test_smoke_test_without_jar(tmp_path):
    with pytest.raises(ConfigurationError):
        run_smoke_test(tmp_path)


def test_smoke_test_missing_java(tmp_path):
    (tmp_path / "server.jar").write_bytes(b"")
    with pytest.raises(ConfigurationError):
        run_smoke_test(tmp_path, java=str(tmp_path / "no-such-java"), ram_gb=2)
    assert (tmp_path / "eula.txt").exists()


@pytest.mark.parametrize("line, status", [
    ('[Server thread/INFO]: Done (12.5s)! For help, type "help"', "started"),
    ("[main/ERROR]: Incompatible mods found!", "failed"),
    (None, "failed"),
])
def test_smoke_test_outcomes(tmp_path, monkeypatch, line, status):
    (tmp_path / "server.jar").write_bytes(b"")
    stopped = []
    monkeypatch.setattr(ServerProcess, "start", lambda self: None)
    monkeypatch.setattr(ServerProcess, "tail_log_for_pattern", lambda self, pattern, timeout: line)
    monkeypatch.setattr(ServerProcess, "stop", lambda self: stopped.append(True))

    result = run_smoke_test(tmp_path, timeout=60, ram_gb=2)

    assert result.status == status
    assert result.ok is (status == "started")
    assert stopped == [True]
