"""
Runtime Bridge command line

Usage:
    runtime-bridge targets
    runtime-bridge eval "document.title"
    runtime-bridge watch
    runtime-bridge status --port 9333
"""

import argparse
import asyncio
import json
import logging
import sys

from runtime_bridge.cdp.discovery import TargetDiscovery, select_target
from runtime_bridge.config import BridgeConfig
from runtime_bridge.errors import ConfigError
from runtime_bridge.runtime.bridge import RuntimeBridge
from runtime_bridge.runtime.connection import ConnectionState
from runtime_bridge.services.logger import cleanup_logging, setup_logging
from runtime_bridge.tools.inspector import DebugInspector

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="runtime-bridge",
        description="Attach to a desktop app's remote debugging port and run scripts in it",
    )
    parser.add_argument("--port", type=int, help="Remote debugging port (default 9222)")
    parser.add_argument("--host", help="Remote debugging host (default localhost)")
    parser.add_argument("--domain", help="Domain expected in the main window URL")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging on the console")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("targets", help="List discovered targets and the one that would be selected")
    eval_parser = sub.add_parser("eval", help="Connect, evaluate an expression, print the result")
    eval_parser.add_argument("expression", help="JavaScript expression")
    sub.add_parser("watch", help="Log connection state changes and navigations until Ctrl-C")
    sub.add_parser("status", help="Connect once and print the inspector snapshot")
    return parser


def config_from_args(args: argparse.Namespace) -> BridgeConfig:
    """BridgeConfig from the environment with command line overrides."""
    overrides = {}
    if args.port is not None:
        overrides["debug_port"] = args.port
    if args.host:
        overrides["host"] = args.host
    if args.domain is not None:
        overrides["target_domain"] = args.domain
    if args.verbose:
        overrides["log_level"] = "DEBUG"
    return BridgeConfig(**overrides)


async def cmd_targets(config: BridgeConfig) -> int:
    discovery = TargetDiscovery(
        port=config.debug_port,
        host=config.host,
        domain=config.target_domain,
        http_timeout=config.http_timeout,
    )
    targets = await discovery.fetch_targets()
    if not targets:
        print(f"No targets found at {discovery.base_url}")
        return 1

    selected = select_target(targets, config.target_domain)
    for target in targets:
        marker = "*" if target is selected else " "
        print(f"{marker} {target}")
    if selected is None:
        print("No attachable page target")
        return 1
    return 0


async def cmd_eval(config: BridgeConfig, expression: str) -> int:
    async with RuntimeBridge(config) as bridge:
        if not bridge.is_connected:
            print(f"Could not connect on port {config.debug_port}", file=sys.stderr)
            return 1
        result = await bridge.execute_script(expression)
    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.success else 1


async def cmd_watch(config: BridgeConfig) -> int:
    bridge = RuntimeBridge(config)
    bridge.on_connection_state_changed(lambda state: logger.info(f"State: {state.value}"))
    bridge.on_navigation(lambda url: logger.info(f"Navigated: {url}"))

    try:
        if not await bridge.connect():
            logger.error("Initial connect failed")
            return 1
        # Runs until Ctrl-C or until reconnection gives up
        while bridge.state is not ConnectionState.FAILED:
            await asyncio.sleep(0.5)
        logger.warning("Connection failed permanently; use a manual retry to reconnect")
        return 1
    finally:
        await bridge.disconnect()


async def cmd_status(config: BridgeConfig) -> int:
    bridge = RuntimeBridge(config)
    inspector = DebugInspector(bridge)
    try:
        await bridge.connect()
        state = await asyncio.to_thread(inspector.get_state)
    finally:
        inspector.close()
        await bridge.disconnect()
    print(json.dumps(state.to_dict(), indent=2))
    return 0 if state.connection_state == ConnectionState.CONNECTED.value else 1


def main(argv: list[str] | None = None) -> int:
    """CLI entry point"""
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
    except ConfigError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    setup_logging(config.logging_config())
    try:
        if args.command == "targets":
            coro = cmd_targets(config)
        elif args.command == "eval":
            coro = cmd_eval(config, args.expression)
        elif args.command == "watch":
            coro = cmd_watch(config)
        else:
            coro = cmd_status(config)
        return asyncio.run(coro)
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    finally:
        cleanup_logging()


if __name__ == "__main__":
    sys.exit(main())
