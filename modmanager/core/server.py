"""Local server smoke test: JVM sizing, process control and log watching."""

import logging
import re
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Pattern, Union

import psutil

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

CONSOLE_LOG = "server-console.log"

# "Done (12.345s)! For help, type "help""
DONE_PATTERN = re.compile(r"Done \(\d+(?:[.,]\d+)?s\)!")
ERROR_PATTERN = re.compile(
    r"(Failed to start the minecraft server|Encountered an unexpected exception"
    r"|Incompatible mods found|Mod resolution failed|crash-reports[\\/])"
)

# Launchers first: a Fabric launcher JAR wraps the vanilla one next to it
SERVER_JAR_PATTERNS = ("fabric-server-*.jar", "minecraft_server*.jar", "server.jar", "*.jar")


def detect_total_ram_gb() -> float:
    return round(psutil.virtual_memory().total / (1024 ** 3), 1)


def _calculate_recommended_ram(total_ram_gb: float) -> float:
    """Heap for a test server: half the RAM, between 2 and 8 GB."""
    return max(2.0, min(8.0, total_ram_gb * 0.5))


def recommend_jvm_args(total_ram_gb: Optional[float] = None,
                       user_ram_gb: Optional[float] = None) -> Dict[str, Any]:
    """
    Recommend JVM arguments for a local server.

    Args:
        total_ram_gb: Total system RAM in GB (detected if None)
        user_ram_gb: User-specified heap size in GB

    Returns:
        Dictionary with "total_ram_gb", "allocated_ram_gb" and "jvm_args"
    """
    if total_ram_gb is None:
        total_ram_gb = detect_total_ram_gb()
    allocated = user_ram_gb or _calculate_recommended_ram(total_ram_gb)
    ram_mb = int(allocated * 1024)

    args = [f"-Xms{max(512, ram_mb // 2)}m", f"-Xmx{ram_mb}m"]
    if allocated >= 4:
        args.extend(["-XX:+UseG1GC", "-XX:+ParallelRefProcEnabled", "-XX:MaxGCPauseMillis=200"])
    else:
        args.extend(["-XX:+UseSerialGC"])

    return {"total_ram_gb": total_ram_gb, "allocated_ram_gb": allocated, "jvm_args": args}


def find_server_jar(server_dir: Path) -> Optional[Path]:
    """Find the JAR to launch in a server folder (not recursive)."""
    server_dir = Path(server_dir)
    for pattern in SERVER_JAR_PATTERNS:
        matches = sorted(p for p in server_dir.glob(pattern) if p.is_file())
        if matches:
            return matches[-1]
    return None


def write_eula(server_dir: Path) -> Path:
    path = Path(server_dir) / "eula.txt"
    path.write_text("eula=true\n", encoding="utf-8")
    return path


class ServerProcess:
    """A server JVM whose console output goes to a log file."""

    def __init__(self, server_dir: Path, jar: Path, jvm_args: Optional[List[str]] = None,
                 java: str = "java"):
        self.server_dir = Path(server_dir)
        self.jar = Path(jar)
        self.jvm_args = list(jvm_args or [])
        self.java = java
        self.log_path = self.server_dir / CONSOLE_LOG
        self.process: Optional[subprocess.Popen] = None
        self._log_handle = None

    @property
    def command(self) -> List[str]:
        return [self.java, *self.jvm_args, "-jar", str(self.jar), "nogui"]

    def is_running(self) -> bool:
        return self.process is not None and self.process.poll() is None

    def start(self) -> None:
        """
        Launch the server.

        Raises:
            ConfigurationError: if Java cannot be executed
        """
        if self.is_running():
            return
        self._log_handle = open(self.log_path, "wb")
        logger.debug("Starting server: %s", " ".join(self.command))
        try:
            self.process = subprocess.Popen(
                self.command,
                cwd=str(self.server_dir),
                stdin=subprocess.PIPE,
                stdout=self._log_handle,
                stderr=subprocess.STDOUT,
            )
        except OSError as e:
            self._close_log()
            raise ConfigurationError(f"Could not start '{self.java}': {e}")
        logger.info("Server started with PID %d", self.process.pid)

    def tail_log_for_pattern(self, pattern: Union[str, Pattern], timeout: float,
                             poll_interval: float = 0.5) -> Optional[str]:
        """
        Wait for a console line matching pattern.

        Args:
            pattern: Regular expression
            timeout: Seconds to wait
            poll_interval: Seconds between reads

        Returns:
            The first matching line, or None on timeout or if the process exits
        """
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        deadline = time.monotonic() + timeout
        position = 0
        pending = ""
        while True:
            if self.log_path.exists():
                with open(self.log_path, "r", encoding="utf-8", errors="replace") as f:
                    f.seek(position)
                    chunk = f.read()
                    position = f.tell()
                lines = (pending + chunk).split("\n")
                pending = lines.pop()
                for line in lines:
                    if regex.search(line):
                        return line.rstrip("\r")
            if not self.is_running() or time.monotonic() >= deadline:
                if pending and regex.search(pending):
                    return pending.rstrip("\r")
                return None
            time.sleep(poll_interval)

    def stop(self, timeout: float = 30.0) -> Optional[int]:
        """
        Stop the server: "stop" on the console, then terminate the process tree.

        Returns:
            The exit code, or None if the server was never started
        """
        if self.process is None:
            return None
        if self.is_running():
            try:
                self.process.stdin.write(b"stop\n")
                self.process.stdin.flush()
                self.process.wait(timeout=timeout)
            except (OSError, subprocess.TimeoutExpired):
                logger.warning("Server did not stop gracefully, terminating")
                self._terminate_tree()
        self._close_log()
        return self.process.returncode

    def _terminate_tree(self) -> None:
        try:
            parent = psutil.Process(self.process.pid)
            children = parent.children(recursive=True)
        except psutil.NoSuchProcess:
            return
        for proc in children + [parent]:
            try:
                proc.terminate()
            except psutil.NoSuchProcess:
                continue
        _, alive = psutil.wait_procs(children + [parent], timeout=10)
        for proc in alive:
            try:
                proc.kill()
            except psutil.NoSuchProcess:
                continue
        self.process.wait()

    def _close_log(self) -> None:
        if self._log_handle is not None:
            self._log_handle.close()
            self._log_handle = None


@dataclass
class SmokeTestResult:
    """Outcome of a server smoke test."""
    status: str  # started | failed | timed_out
    message: str = ""
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == "started"


def run_smoke_test(server_dir: Path, timeout: float = 300.0, java: str = "java",
                   ram_gb: Optional[float] = None) -> SmokeTestResult:
    """
    Start the server in server_dir, wait for it to finish loading, stop it.

    Args:
        server_dir: Folder holding the server JAR and a mods/ folder
        timeout: Seconds to wait for the "Done" line
        java: Java executable
        ram_gb: Heap size; sized from system RAM when None

    Returns:
        SmokeTestResult

    Raises:
        ConfigurationError: no server JAR in server_dir, or Java missing
    """
    server_dir = Path(server_dir)
    jar = find_server_jar(server_dir)
    if jar is None:
        raise ConfigurationError(f"No server JAR found in {server_dir}; run download-server first")

    write_eula(server_dir)
    jvm = recommend_jvm_args(user_ram_gb=ram_gb)
    server = ServerProcess(server_dir, jar, jvm["jvm_args"], java=java)

    started = time.monotonic()
    server.start()
    try:
        line = server.tail_log_for_pattern(
            re.compile(f"{DONE_PATTERN.pattern}|{ERROR_PATTERN.pattern}"), timeout
        )
    finally:
        server.stop()
    duration = round(time.monotonic() - started, 1)

    if line is None:
        if duration < timeout:
            return SmokeTestResult("failed", "server exited before it finished loading", duration)
        return SmokeTestResult("timed_out", f"no startup line within {timeout:g}s", duration)
    if DONE_PATTERN.search(line):
        return SmokeTestResult("started", line.strip(), duration)
    return SmokeTestResult("failed", line.strip(), duration)
