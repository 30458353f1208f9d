from __future__ import annotations

import argparse
import asyncio
import json
import logging

from aiohttp import web

from propgrid_offline.config import YamlConfigLoader
from propgrid_offline.config.models import AppConfig, ConfigLoadRequest
from propgrid_offline.gateway import create_app
from propgrid_offline.logging import init_logging
from propgrid_offline.runtime import Runtime, build_runtime
from propgrid_offline.worker.manager import WorkerState

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="propgrid-offline", description="PropGrid offline cache manager")
    parser.add_argument(
        "--config",
        default="data/config/config.yaml",
        help="Path to config.yaml (default: data/config/config.yaml)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True, help="Command to run")

    # Command: serve
    serve_parser = subparsers.add_parser("serve", help="Install the current version and start the HTTP gateway")
    serve_parser.add_argument(
        "--run-seconds",
        type=float,
        default=None,
        help="Serve for N seconds then exit (useful for smoke testing).",
    )

    # Command: install
    subparsers.add_parser("install", help="Precache the manifest and activate the current version")

    # Command: sync
    subparsers.add_parser("sync", help="Replay the pending form submission once")

    # Command: caches
    subparsers.add_parser("caches", help="List cache generations and their entries")

    return parser


async def _load_config(args: argparse.Namespace) -> AppConfig:
    loader = YamlConfigLoader()
    request = ConfigLoadRequest(
        yaml_path=args.config,
    )
    return await loader.load(request)


async def _install(runtime: Runtime) -> bool:
    worker = runtime.new_worker()
    state = await runtime.registration.register(worker)
    if state is WorkerState.REDUNDANT:
        logger.error("No worker version could be activated. version=%s", worker.version)
        return False
    return True


async def _serve(args: argparse.Namespace) -> None:
    config = await _load_config(args)
    init_logging(config.logging)
    logger.info("Starting gateway. origin=%s version=%s", config.app.origin, config.cache.version)

    async with build_runtime(config) as runtime:
        if not await _install(runtime):
            logger.warning("Serving without an active worker; requests go straight to the network.")

        app = create_app(registration=runtime.registration, storage=runtime.storage, origin=config.app.origin)
        runner = web.AppRunner(app)
        await runner.setup()
        try:
            site = web.TCPSite(runner, host=config.gateway.host, port=config.gateway.port)
            await site.start()
            logger.info("Gateway listening. host=%s port=%s", config.gateway.host, config.gateway.port)

            if args.run_seconds is not None:
                await asyncio.sleep(args.run_seconds)
            else:
                await asyncio.Event().wait()
        finally:
            await runner.cleanup()


async def _install_command(args: argparse.Namespace) -> None:
    config = await _load_config(args)
    init_logging(config.logging)
    async with build_runtime(config) as runtime:
        installed = await _install(runtime)
    if not installed:
        raise SystemExit(1)
    logger.info("Install completed. version=%s", config.cache.version)


async def _sync(args: argparse.Namespace) -> None:
    config = await _load_config(args)
    init_logging(config.logging)
    async with build_runtime(config) as runtime:
        delivered = await runtime.new_worker().background_sync()
    logger.info("Background sync finished. delivered=%s", delivered)


async def _caches(args: argparse.Namespace) -> None:
    config = await _load_config(args)
    init_logging(config.logging)
    runtime = build_runtime(config)
    listing = {}
    for name in await runtime.storage.keys():
        listing[name] = await runtime.storage.generation(name).keys()
    print(json.dumps(listing, indent=2))


async def _main_async() -> None:
    parser = _build_parser()
    args = parser.parse_args()

    if args.command == "serve":
        await _serve(args)
    elif args.command == "install":
        await _install_command(args)
    elif args.command == "sync":
        await _sync(args)
    elif args.command == "caches":
        await _caches(args)


def main() -> None:
    try:
        asyncio.run(_main_async())
    except KeyboardInterrupt:
        logger.info("Interrupted by user.")


if __name__ == "__main__":
    main()
