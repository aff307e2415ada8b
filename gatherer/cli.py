from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

import httpx
from websockets.exceptions import WebSocketException

from gatherer.config import default_config_path, init_config, load_config
from gatherer.logging import configure_logging
from gatherer.protocol import ProtocolError
from gatherer.runtime import run_pass, write_artifacts

logger = logging.getLogger("sourcemap_gatherer")


def cmd_init_config(args: argparse.Namespace) -> int:
    path = init_config(Path(args.config).expanduser())
    print(f"initialized config: {path}")
    return 0


def cmd_collect(args: argparse.Namespace) -> int:
    config = load_config(Path(args.config).expanduser())
    try:
        payload = asyncio.run(run_pass(config, args.url))
    except (httpx.HTTPError, ProtocolError, WebSocketException, OSError) as exc:
        logger.error("unable to reach devtools at %s: %s", config.devtools_url, exc)
        return 2
    output = Path(args.output) if args.output else Path(config.output_path)
    path = write_artifacts(output, payload)
    print(f"wrote artifacts: {path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sourcemap-gatherer")
    parser.add_argument("--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init-config", help="write a default config file")
    init_parser.add_argument("--config", type=str, default=str(default_config_path()))
    init_parser.set_defaults(func=cmd_init_config)

    collect_parser = subparsers.add_parser("collect", help="load a page and collect its source maps")
    collect_parser.add_argument("url")
    collect_parser.add_argument("--config", type=str, default=str(default_config_path()))
    collect_parser.add_argument("--output", type=str, default=None)
    collect_parser.set_defaults(func=cmd_collect)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(bool(args.verbose))
    return int(args.func(args))
