"""Command-line interface."""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import requests
from rich.console import Console
from rich.logging import RichHandler

from . import APP_NAME, __version__
from .core.catalog import add_mod, list_mods, remove_mod
from .core.database import ModDatabase, load_database, write_database
from .core.downloads import download_mods, download_server_files
from .core.errors import ConfigurationError, ModManagerError
from .core.reconcile import ReconciliationEngine, ValidationReport
from .core.report import (generate_markdown_summary, render_download_report, render_mod_list,
                          render_row_details, render_summary)
from .core.server import run_smoke_test
from .core.versions import majority_game_version
from .integrations.registry import ProviderRegistry
from .settings import Settings, load_settings, save_settings
from .util.cache import CacheMode, ResponseCache

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool, console: Console) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    logging.getLogger().setLevel(level)
    # urllib3 is chatty at DEBUG
    logging.getLogger("urllib3").setLevel(logging.INFO)
    logging.captureWarnings(True)


def _common_options() -> argparse.ArgumentParser:
    """Options accepted both before and after the subcommand."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--database-file", default=argparse.SUPPRESS,
                        help="CSV mod database (default: modlist.csv)")
    common.add_argument("--use-cached-responses", action="store_true", default=argparse.SUPPRESS,
                        help="Reuse stored API responses, fetching only what is missing")
    common.add_argument("--offline", action="store_true", default=argparse.SUPPRESS,
                        help="Only use stored API responses; a missing one is an error")
    common.add_argument("--api-response-folder", default=argparse.SUPPRESS,
                        help="Folder for stored API responses (default: apiresponse)")
    common.add_argument("--download-folder", default=argparse.SUPPRESS,
                        help="Folder for downloaded files (default: download)")
    common.add_argument("--config", default=argparse.SUPPRESS,
                        help="JSON settings file (default: ~/.modmanager/config.json)")
    common.add_argument("-v", "--verbose", action="store_true", default=argparse.SUPPRESS,
                        help="Per-row details and debug logging")
    return common


def _add_validate_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--game-version", default=None,
                        help="Target for the Next slot (default: the patch after the majority game version)")
    parser.add_argument("--latest-ceiling", default=None,
                        help="Highest game version the Latest slot may use")
    parser.add_argument("--summary-file", default=None,
                        help="Also write the summary as Markdown to this file")


def build_parser() -> argparse.ArgumentParser:
    common = _common_options()
    parser = argparse.ArgumentParser(
        prog="modmanager",
        description=f"{APP_NAME}: keep a Minecraft mod list current and download it",
        parents=[common],
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True

    p = sub.add_parser("list", parents=[common], help="Show the records in the database")
    p.add_argument("--group", default=None, help="required, optional or block")
    p.add_argument("--type", dest="mod_type", default=None)
    p.add_argument("--loader", default=None)

    p = sub.add_parser("add", parents=[common], help="Add a mod from a URL or ID")
    p.add_argument("reference", help="Project URL, provider ID, owner/repo or direct download URL")
    p.add_argument("--loader", default="fabric")
    p.add_argument("--type", dest="mod_type", default=None)
    p.add_argument("--game-version", default=None,
                   help="Game version to resolve against (default: majority of the database)")
    p.add_argument("--group", default="required", choices=["required", "optional", "block"])
    p.add_argument("--provider", default=None,
                   choices=["modrinth", "curseforge", "github", "mojang", "fabric", "direct"])
    p.add_argument("--mod-version", dest="mod_version", default=None, help="Pin this version")
    p.add_argument("--field", action="append", default=[], metavar="COLUMN=VALUE",
                   help="Set a column on the new record (repeatable)")

    p = sub.add_parser("remove", parents=[common], help="Remove a mod")
    p.add_argument("mod_id")
    p.add_argument("--type", dest="mod_type", default=None)
    p.add_argument("--loader", default=None)

    p = sub.add_parser("validate", parents=[common],
                       help="Refresh Next/Latest and report available updates")
    _add_validate_options(p)

    p = sub.add_parser("update", parents=[common],
                       help="Like validate, and move Current to the newest version")
    _add_validate_options(p)

    p = sub.add_parser("download", parents=[common], help="Validate, then download mods")
    _add_validate_options(p)
    p.add_argument("--slot", default="current", choices=["current", "next", "latest"])

    p = sub.add_parser("download-mods", parents=[common], help="Download mods without validating")
    p.add_argument("--slot", default="current", choices=["current", "next", "latest"])

    p = sub.add_parser("download-server", parents=[common],
                       help="Download server, launcher and installer JARs")
    p.add_argument("--game-version", default=None, help="Default: majority game version")

    p = sub.add_parser("start-server", parents=[common], help="Smoke-test a downloaded server")
    p.add_argument("--game-version", default=None, help="Default: majority game version")
    p.add_argument("--timeout", type=float, default=300.0, help="Seconds to wait for startup")
    p.add_argument("--java", default="java")
    p.add_argument("--ram-gb", type=float, default=None)

    sub.add_parser("clear-cache", parents=[common], help="Delete stored API responses")

    p = sub.add_parser("config", parents=[common], help="Show the effective settings")
    p.add_argument("--save", action="store_true", help="Write them to the settings file")

    return parser


def resolve_settings(args: argparse.Namespace) -> Settings:
    """Settings from file and environment, with command-line flags on top."""
    config = getattr(args, "config", None)
    settings = load_settings(Path(config) if config else None)
    cache_mode = None
    if getattr(args, "offline", False):
        cache_mode = CacheMode.CACHED_ONLY
    elif getattr(args, "use_cached_responses", False):
        cache_mode = CacheMode.LIVE
    return settings.with_overrides(
        database_file=getattr(args, "database_file", None),
        api_response_folder=getattr(args, "api_response_folder", None),
        download_folder=getattr(args, "download_folder", None),
        cache_mode=cache_mode,
        latest_game_version_ceiling=getattr(args, "latest_ceiling", None),
    )


class App:
    """One CLI invocation: settings, console and lazily created collaborators."""

    def __init__(self, settings: Settings, console: Console, verbose: bool = False,
                 session: Optional[requests.Session] = None):
        self.settings = settings
        self.console = console
        self.verbose = verbose
        self.session = session
        self._registry: Optional[ProviderRegistry] = None

    @property
    def database_path(self) -> Path:
        return Path(self.settings.database_file)

    @property
    def cache(self) -> ResponseCache:
        return ResponseCache(Path(self.settings.api_response_folder), self.settings.cache_mode)

    @property
    def registry(self) -> ProviderRegistry:
        if self._registry is None:
            self._registry = ProviderRegistry(self.settings, cache=self.cache, session=self.session)
        return self._registry

    def close(self) -> None:
        if self._registry is not None:
            self._registry.close()

    def load(self) -> ModDatabase:
        return load_database(self.database_path)

    def _game_version(self, db: ModDatabase, requested: Optional[str]) -> str:
        game_version = requested or majority_game_version(db.records)
        if not game_version:
            raise ConfigurationError("No game version given and none can be derived from the database")
        return game_version

    # ---- commands ----

    def cmd_list(self, args) -> int:
        db = self.load()
        render_mod_list(list_mods(db, args.group, args.mod_type, args.loader), self.console)
        return 0

    def cmd_add(self, args) -> int:
        fields = {}
        for item in args.field:
            column, sep, value = item.partition("=")
            if not sep:
                raise ConfigurationError(f"--field expects COLUMN=VALUE, got '{item}'")
            fields[column.strip()] = value

        db = self.load()
        record = add_mod(db, self.registry, args.reference, loader=args.loader,
                         mod_type=args.mod_type, game_version=args.game_version, group=args.group,
                         provider=args.provider, version=args.mod_version, fields=fields)
        write_database(db)
        self.console.print(f"Added [bold]{record.display_name}[/] {record.current_version}")
        return 0

    def cmd_remove(self, args) -> int:
        db = self.load()
        removed = remove_mod(db, args.mod_id, args.mod_type, args.loader)
        write_database(db)
        self.console.print(f"Removed {len(removed)} record(s)")
        return 0

    def _validate(self, args, apply_updates: bool) -> ValidationReport:
        db = self.load()
        engine = ReconciliationEngine(
            self.registry,
            apply_updates=apply_updates,
            target_game_version=args.game_version,
            latest_ceiling=self.settings.latest_game_version_ceiling,
        )
        report = engine.validate(db)
        if report.changed:
            write_database(db)
        else:
            logger.debug("No changes; %s left as is", self.database_path)

        render_summary(report.summary, self.console)
        if self.verbose:
            render_row_details(report.rows, self.console)
        if args.summary_file:
            Path(args.summary_file).write_text(
                generate_markdown_summary(report, str(self.database_path)), encoding="utf-8"
            )
        return report

    def cmd_validate(self, args) -> int:
        self._validate(args, apply_updates=False)
        return 0

    def cmd_update(self, args) -> int:
        self._validate(args, apply_updates=True)
        return 0

    def cmd_download(self, args) -> int:
        self._validate(args, apply_updates=False)
        return self.cmd_download_mods(args)

    def cmd_download_mods(self, args) -> int:
        db = self.load()
        report = download_mods(db.records, Path(self.settings.download_folder), args.slot,
                               session=self.session, timeout=self.settings.request_timeout)
        render_download_report(report, self.console)
        return 0

    def cmd_download_server(self, args) -> int:
        db = self.load()
        game_version = self._game_version(db, args.game_version)
        report = download_server_files(db.records, Path(self.settings.download_folder), game_version,
                                       session=self.session, timeout=self.settings.request_timeout)
        render_download_report(report, self.console)
        return 0

    def cmd_start_server(self, args) -> int:
        db = self.load()
        game_version = self._game_version(db, args.game_version)
        server_dir = Path(self.settings.download_folder) / game_version
        self.console.print(f"Starting server in {server_dir}")
        result = run_smoke_test(server_dir, timeout=args.timeout, java=args.java, ram_gb=args.ram_gb)
        style = "green" if result.ok else "red"
        self.console.print(f"[{style}]{result.status}[/] after {result.duration}s: {result.message}")
        return 0 if result.ok else 1

    def cmd_clear_cache(self, args) -> int:
        cache = self.cache
        size = cache.get_cache_size()
        cache.clear()
        self.console.print(f"Removed {size / 1024:.1f} KiB of stored responses from {cache.cache_dir}")
        return 0

    def cmd_config(self, args) -> int:
        data = self.settings.to_dict()
        for secret in ("curseforge_api_key", "github_token"):
            if data.get(secret):
                data[secret] = "***"
        for key, value in data.items():
            self.console.print(f"{key} = {value}")
        if args.save:
            config = getattr(args, "config", None)
            path = save_settings(self.settings, Path(config) if config else None)
            self.console.print(f"Saved to {path}")
        return 0


def main(argv: Optional[List[str]] = None, session: Optional[requests.Session] = None,
         console: Optional[Console] = None) -> int:
    """
    Run the CLI.

    Args:
        argv: Arguments (defaults to sys.argv[1:])
        session: HTTP session for providers and downloads
        console: Output console

    Returns:
        Exit code: 0 on success, 1 on configuration or command errors
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    console = console or Console()
    verbose = getattr(args, "verbose", False)
    setup_logging(verbose, console)

    try:
        settings = resolve_settings(args)
    except (ValueError, TypeError) as e:
        logger.error("Invalid settings: %s", e)
        return 1

    app = App(settings, console, verbose=verbose, session=session)
    handler = getattr(app, "cmd_" + args.command.replace("-", "_"))
    try:
        return handler(args)
    except ConfigurationError as e:
        logger.error("%s", e)
        return 1
    except ModManagerError as e:
        logger.error("%s", e)
        logger.debug("Details", exc_info=True)
        return 1
    finally:
        app.close()


if __name__ == "__main__":
    sys.exit(main())
