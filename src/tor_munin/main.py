from __future__ import annotations

import argparse
import logging
import os
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path

from tor_munin.config import load_config
from tor_munin.errors import TorMuninError, UsageError
from tor_munin.providers import Variant
from tor_munin.service import Dispatcher, Mode, OutputFormat


LOGGER = logging.getLogger("tor_munin")
PROGRAM_PREFIX = "tor_"
DEFAULT_LOG_LEVEL = "WARNING"


def build_arg_parser(environ: Mapping[str, str] | None = None) -> argparse.ArgumentParser:
    if environ is None:
        environ = os.environ

    parser = argparse.ArgumentParser(description="Munin plugin reporting Tor relay statistics")
    parser.add_argument(
        "mode",
        nargs="?",
        default=None,
        help="config, fetch (default), autoconf or suggest",
    )
    parser.add_argument(
        "--variant",
        default=environ.get("TOR_MUNIN_VARIANT"),
        help="graph to report (defaults to the suffix of a tor_<variant> symlink)",
    )
    parser.add_argument(
        "--format",
        dest="output_format",
        choices=[output_format.value for output_format in OutputFormat],
        default=OutputFormat.MUNIN.value,
        help="output format for fetch",
    )
    parser.add_argument(
        "--log-level",
        default=environ.get("TOR_MUNIN_LOG_LEVEL", DEFAULT_LOG_LEVEL),
        help="python logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    return parser


def resolve_log_level(name: str) -> int | None:
    level = logging.getLevelName(name.strip().upper())
    if isinstance(level, int):
        return level
    return None


def resolve_variant(explicit: str | None, program: str) -> Variant:
    if explicit:
        name = explicit
    else:
        base = Path(program).name
        if not base.startswith(PROGRAM_PREFIX) or base == PROGRAM_PREFIX:
            raise UsageError(f"cannot derive a variant from program name {base!r}; pass --variant")
        name = base[len(PROGRAM_PREFIX) :]
    try:
        return Variant(name)
    except ValueError as error:
        choices = ", ".join(variant.value for variant in Variant)
        raise UsageError(f"unknown variant {name!r} (expected one of: {choices})") from error


def _run(args: argparse.Namespace, program: str, environ: Mapping[str, str]) -> list[str]:
    mode = Mode.parse(args.mode)
    if mode is Mode.LIST:
        return Dispatcher.list_variants()

    if mode is Mode.PROBE:
        try:
            config = load_config(environ)
        except TorMuninError as error:
            return [f"no ({error})"]
        return Dispatcher(config).run(mode)

    variant = resolve_variant(args.variant, program)
    config = load_config(environ)
    dispatcher = Dispatcher(config, variant, output_format=OutputFormat(args.output_format))
    return dispatcher.run(mode)


def main(
    argv: Sequence[str] | None = None,
    *,
    program: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> int:
    if program is None:
        program = sys.argv[0]
    if environ is None:
        environ = os.environ

    parser = build_arg_parser(environ)
    args = parser.parse_args(argv)
    level = resolve_log_level(args.log_level)
    logging.basicConfig(
        level=logging.WARNING if level is None else level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    if level is None:
        LOGGER.warning("unknown log level %r, using %s", args.log_level, DEFAULT_LOG_LEVEL)

    try:
        lines = _run(args, program, environ)
    except TorMuninError as error:
        LOGGER.error("%s", error)
        return error.exit_code

    for line in lines:
        print(line)
    return 0


if __name__ == "__main__":
    sys.exit(main())
