"""Command line interface for artifact_publisher package."""
from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Optional, Sequence
from urllib.parse import quote

from rich.logging import RichHandler

from . import __version__
from .cli_progress import (
    PublishProgressDisplay,
    render_commit_result,
    render_configuration_summary,
    render_listing,
)
from .errors import PublishError
from .models import DEFAULT_ALIAS_FOLDER_NAME, ModuleRevision, PublishConfig
from .orchestrator import PublishOrchestrator
from .services.connection_cache import RepositoryConnectionCache, connection_factory

DEFAULT_PATTERN = "[organisation]/[module]/[revision]/[artifact]"


class CLIError(RuntimeError):
    """Raised when CLI validation/execution fails."""


def _setup_logging(debug: bool, silent: bool, log_level: Optional[str]) -> str:
    """
    Configure logging.

    Default behavior is silent unless --debug or --log-level is provided.
    Returns a string describing effective mode.
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    logging.disable(logging.NOTSET)

    if silent or (not debug and not log_level):
        logging.disable(logging.CRITICAL)
        root_logger.setLevel(logging.CRITICAL + 1)
        return "silent"

    if debug:
        level = logging.DEBUG
    else:
        level = getattr(logging, log_level.upper(), logging.INFO)

    handler = RichHandler(
        rich_tracebacks=True,
        markup=False,
        show_time=False,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    return logging.getLevelName(level)


def _strip_optional_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _load_env_file(path: Path, override: bool = False) -> None:
    if not path.exists():
        raise CLIError(f"env file not found: {path}")
    if not path.is_file():
        raise CLIError(f"env path is not a file: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"could not read env file {path}: {exc}") from exc

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue

        value = _strip_optional_quotes(value.strip())
        if override or key not in os.environ:
            os.environ[key] = value


def _resolve_default_env_file() -> Optional[Path]:
    default_env = Path(".env")
    return default_env if default_env.exists() and default_env.is_file() else None


def render_destination(pattern: str, module: ModuleRevision, artifact: str) -> str:
    """Expand an Ivy-style destination pattern for one artifact file."""
    tokens = {
        "organisation": module.organisation,
        "organization": module.organisation,
        "module": module.name,
        "revision": module.revision,
        "artifact": artifact,
    }
    rendered = pattern
    for token, value in tokens.items():
        rendered = rendered.replace(f"[{token}]", value)
    if "[" in rendered or "]" in rendered:
        raise CLIError(f"unknown token in pattern: {pattern}")
    rendered = rendered.strip("/")
    if not rendered:
        raise CLIError(f"pattern renders to an empty path: {pattern}")
    return rendered


def _join_url(repository: str, path: str) -> str:
    return f"{repository.rstrip('/')}/{quote(path)}"


def _build_orchestrator(args: argparse.Namespace, config: PublishConfig) -> PublishOrchestrator:
    username = args.username or os.getenv("SVN_USERNAME")
    password = args.password or os.getenv("SVN_PASSWORD")
    cache = RepositoryConnectionCache(connection_factory(username, password))
    return PublishOrchestrator(cache, config)


def _run_publish(args: argparse.Namespace, orchestrator: PublishOrchestrator) -> int:
    module = ModuleRevision(args.organisation, args.module, args.revision)
    PublishProgressDisplay().attach(orchestrator.events)

    orchestrator.begin_publish_transaction(module)
    try:
        for source in args.files:
            path = render_destination(args.pattern, module, source.name)
            orchestrator.put(source, _join_url(args.repository, path), overwrite=args.overwrite)
        result = orchestrator.commit_publish_transaction()
    except Exception:
        transaction = orchestrator.transaction
        if transaction is not None and transaction.is_open:
            orchestrator.abort_publish_transaction()
        raise

    render_commit_result(result)
    return 0


def _run_get(args: argparse.Namespace, orchestrator: PublishOrchestrator) -> int:
    PublishProgressDisplay().attach(orchestrator.events)
    destination = Path(args.destination).expanduser()
    if destination.is_dir():
        destination = destination / args.url.rstrip("/").rpartition("/")[2]
    orchestrator.get(args.url, destination)
    return 0


def _run_list(args: argparse.Namespace, orchestrator: PublishOrchestrator) -> int:
    render_listing(orchestrator.list(args.url))
    return 0


def _execute(args: argparse.Namespace) -> int:
    try:
        config = PublishConfig(
            alias_mode=getattr(args, "alias", False),
            alias_folder_name=getattr(args, "alias_folder", DEFAULT_ALIAS_FOLDER_NAME),
            cleanup_publish_folder=getattr(args, "cleanup", True),
            retrieve_revision=getattr(args, "at_revision", -1),
        )
    except PublishError as exc:
        raise CLIError(str(exc)) from exc

    orchestrator = _build_orchestrator(args, config)
    try:
        return args.handler(args, orchestrator)
    except ImportError as exc:
        raise CLIError(
            f"Subversion support is not installed (pip install artifact-publisher[svn]): {exc}"
        ) from exc
    except (PublishError, ValueError, OSError) as exc:
        raise CLIError(str(exc)) from exc
    except CLIError:
        raise
    except Exception as exc:
        # Store client failures (e.g. subvertpy.SubversionException) are not wrapped by the core
        raise CLIError(f"{type(exc).__name__}: {exc}") from exc
    finally:
        orchestrator.close()


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--username", default=None, help="Repository user (default from SVN_USERNAME)")
    parser.add_argument("--password", default=None, help="Repository password (default from SVN_PASSWORD)")
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from this .env file",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logs")
    parser.add_argument("--silent", action="store_true", help="Only print errors")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Explicit log level (DEBUG/INFO/WARNING/ERROR)",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="artifact-publish",
        description="Publish artifacts to a Subversion repository in a single commit.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"artifact-publish {__version__}",
    )
    commands = parser.add_subparsers(dest="command")

    publish = commands.add_parser("publish", help="Publish files for one module revision")
    publish.add_argument("files", nargs="+", type=Path, help="Artifact files to publish")
    publish.add_argument("-r", "--repository", required=True, help="Repository URL")
    publish.add_argument("-o", "--organisation", required=True, help="Module organisation")
    publish.add_argument("-m", "--module", required=True, help="Module name")
    publish.add_argument("-v", "--revision", required=True, help="Module revision")
    publish.add_argument(
        "-p",
        "--pattern",
        default=DEFAULT_PATTERN,
        help=f"Destination pattern (default: {DEFAULT_PATTERN})",
    )
    publish.add_argument("--overwrite", action="store_true", help="Replace existing files")
    publish.add_argument(
        "--no-alias",
        dest="alias",
        action="store_false",
        help="Do not mirror the publish to the alias folder",
    )
    publish.add_argument(
        "--alias-folder",
        default=DEFAULT_ALIAS_FOLDER_NAME,
        help=f"Alias folder name (default: {DEFAULT_ALIAS_FOLDER_NAME})",
    )
    publish.add_argument(
        "--no-cleanup",
        dest="cleanup",
        action="store_false",
        help="Keep files in published folders that are not part of this publish",
    )
    _add_common_arguments(publish)
    publish.set_defaults(handler=_run_publish)

    get = commands.add_parser("get", help="Download one file")
    get.add_argument("url", help="File URL")
    get.add_argument("destination", type=Path, help="Local file or folder")
    get.add_argument("--at-revision", type=int, default=-1, help="Repository revision (default: HEAD)")
    _add_common_arguments(get)
    get.set_defaults(handler=_run_get)

    listing = commands.add_parser("list", help="List a remote folder")
    listing.add_argument("url", help="Folder URL")
    listing.add_argument("--at-revision", type=int, default=-1, help="Repository revision (default: HEAD)")
    _add_common_arguments(listing)
    listing.set_defaults(handler=_run_list)

    return parser


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    used_env_file = args.env_file or _resolve_default_env_file()
    if used_env_file is not None:
        try:
            _load_env_file(Path(used_env_file))
        except CLIError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1

    effective_log_mode = _setup_logging(
        debug=args.debug,
        silent=args.silent,
        log_level=args.log_level,
    )

    summary = {"Command": args.command, "URL": getattr(args, "url", None) or args.repository}
    if args.command == "publish":
        missing = [str(path) for path in args.files if not path.is_file()]
        if missing:
            print(f"ERROR: source file does not exist: {', '.join(missing)}", file=sys.stderr)
            return 1
        summary.update({
            "Module": str(ModuleRevision(args.organisation, args.module, args.revision)),
            "Files": len(args.files),
            "Pattern": args.pattern,
            "Overwrite": "yes" if args.overwrite else "no",
            "Alias": args.alias_folder if args.alias else "off",
            "Cleanup": "yes" if args.cleanup else "no",
        })
    summary.update({
        "User": args.username or os.getenv("SVN_USERNAME") or "-",
        "Env File": str(used_env_file) if used_env_file else "-",
        "Logging": effective_log_mode,
    })
    if args.command == "publish":
        render_configuration_summary(summary)

    try:
        return _execute(args)
    except CLIError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Cancelled.", file=sys.stderr)
        return 130


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
