#!/usr/bin/env python3
"""Entry point for the interop bundle relay.

Subcommands:
  relay      extract, prove, wait for the root and verify/execute a bundle
  watch      follow a bundle through every stage without submitting
  status     read bundle and call status from the interop handler
  extract    decode the bundle sent by a source transaction
  proof      build the inclusion proof for a source transaction
  explain    pre-flight checks for a bundle and proof pair
  bundle     verify or execute a saved bundle.hex and proof.json
  send       start a bundle or a message on the source chain
  tx-show    decode the interop events of a transaction
  root-wait  wait for a batch root to reach the destination chain
  attributes encode call and bundle attributes
  asset-id   derive the asset id of a native token vault token
"""

import argparse
import asyncio
import dataclasses
import json
import logging
import os
import sys
from pathlib import Path

# Configure logging before any other imports create loggers
def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

logger = logging.getLogger(__name__)

from cast_interop.artifacts import (
    decode_hex,
    load_calls,
    load_hex_or_path,
    load_proof,
    write_relay_outputs,
)
from cast_interop.config import RelayConfig
from cast_interop.event_processor import EventProcessor
from cast_interop.exceptions import InteropError, RpcError
from cast_interop.explain import explain
from cast_interop.models import format_hex
from cast_interop.relayer import BundleRelayer, RelayMode
from cast_interop.sender import InteropSender
from cast_interop.status import StatusReader
from cast_interop.utils.attributes import (
    DEFAULT_NATIVE_TOKEN_VAULT,
    build_bundle_attributes,
    build_call_attributes,
    encode_asset_id,
)
from cast_interop.utils.bundle_codec import decode_bundle
from cast_interop.utils.chain_client import ChainClient
from cast_interop.watcher import BundleWatcher, WatchTarget

PERMISSIONLESS = "permissionless"


def parse_permissionless_address(value: str) -> str | None:
    """Map the "permissionless" sentinel to None."""
    return None if value == PERMISSIONLESS else value


def bundle_attribute_kwargs(execution_address: str | None, unbundler: str | None) -> dict:
    """Translate the executionAddress/unbundler flags into build_bundle_attributes kwargs."""
    kwargs = {}
    if execution_address is not None:
        kwargs["execution_address"] = parse_permissionless_address(execution_address)
    if unbundler is not None:
        if unbundler == PERMISSIONLESS:
            raise ValueError("unbundler cannot be permissionless")
        kwargs["unbundler_address"] = unbundler
    return kwargs


def print_json(data) -> None:
    print(json.dumps(data, indent=2))


async def cmd_relay(args: argparse.Namespace, config: RelayConfig) -> None:
    relayer = BundleRelayer.from_config(config)
    run = await relayer.relay(
        args.tx,
        RelayMode(args.mode),
        message_index=args.msg_index,
        dry_run=args.dry_run,
    )
    if args.wait_status:
        await relayer.refresh_status(run, include_calls=True)

    destination_chain_id = await relayer.destination.get_chain_id()
    summary = run.summary(destination_chain_id)
    if args.out:
        write_relay_outputs(args.out, run.encoded_bundle, run.proof, summary)

    output = summary.to_dict()
    output["stage"] = run.stage.value
    if run.simulation is not None:
        output["simulation"] = {
            "success": run.simulation.success,
            "reason": run.simulation.reason,
        }
    if run.bundle_status is not None:
        output["bundleStatus"] = run.bundle_status.label
    print_json(output)


async def cmd_watch(args: argparse.Namespace, config: RelayConfig) -> None:
    def on_event(event) -> None:
        print_json(event.to_dict())

    source = ChainClient(config.source_chain.rpc_url, request_timeout=config.request_timeout)
    destination = ChainClient(config.destination_chain.rpc_url, request_timeout=config.request_timeout)
    watcher = BundleWatcher(source, destination, config.addresses, config.waits, on_event=on_event)
    until = WatchTarget(args.until) if args.until else None
    await watcher.watch(args.tx, message_index=args.msg_index, until=until)


async def cmd_status(args: argparse.Namespace, config: RelayConfig) -> None:
    destination = ChainClient(config.destination_chain.rpc_url, request_timeout=config.request_timeout)
    reader = StatusReader(destination, config.addresses.interop_handler)
    bundle_hash = load_hex_or_path(args.bundle_hash)
    report = await reader.report(bundle_hash, args.calls)
    print_json(report.to_dict())


async def cmd_extract(args: argparse.Namespace, config: RelayConfig) -> None:
    relayer = BundleRelayer.from_config(config)
    run = await relayer.extract(args.tx)
    encoded_hex = format_hex(run.encoded_bundle)
    output = {
        "bundleHash": format_hex(run.bundle_hash),
        "encodedBundleHex": encoded_hex,
        "bundle": run.bundle.to_dict(),
    }
    if args.out:
        Path(args.out).write_text(encoded_hex)
    print_json(output)


async def cmd_proof(args: argparse.Namespace, config: RelayConfig) -> None:
    relayer = BundleRelayer.from_config(config)
    run = await relayer.extract(args.tx)
    await relayer.wait_for_finalization(run)
    proof = await relayer.wait_for_proof(run, args.msg_index)
    if args.out:
        Path(args.out).write_text(json.dumps(proof.to_dict(), indent=2))
    print_json(proof.to_dict())


async def cmd_explain(args: argparse.Namespace, config: RelayConfig) -> None:
    destination = ChainClient(
        config.destination_chain.rpc_url,
        private_key=config.private_key,
        request_timeout=config.request_timeout,
    )
    chain_id = await destination.get_chain_id()
    bundle = decode_bundle(load_hex_or_path(args.bundle))
    proof = load_proof(args.proof)
    checks = explain(bundle, proof, chain_id, config.addresses.interop_center, destination.address)
    print_json([item.to_dict() for item in checks])


async def cmd_bundle(args: argparse.Namespace, config: RelayConfig) -> None:
    overrides = {}
    if args.handler:
        overrides["interop_handler"] = args.handler
    if args.center:
        overrides["interop_center"] = args.center
    if overrides:
        config = dataclasses.replace(config, addresses=dataclasses.replace(config.addresses, **overrides))

    relayer = BundleRelayer.from_config(config)
    mode = RelayMode(args.action)
    result = await relayer.submit_bundle(
        load_hex_or_path(args.bundle), load_proof(args.proof), mode, dry_run=args.dry_run
    )
    output = {"action": mode.value, "dryRun": args.dry_run}
    if result.simulation is not None:
        output["success"] = result.simulation.success
        output["reason"] = result.simulation.reason
    else:
        output["txHash"] = result.tx_hash
    print_json(output)


async def cmd_send(args: argparse.Namespace, config: RelayConfig) -> None:
    client = ChainClient(
        config.source_chain.rpc_url,
        private_key=config.private_key,
        request_timeout=config.request_timeout,
    )
    sender = InteropSender(client, config.addresses, receipt_timeout=config.waits.timeout_ms / 1000)
    attribute_kwargs = bundle_attribute_kwargs(args.execution_address, args.unbundler)

    match args.kind:
        case "bundle":
            result = await sender.send_bundle(
                args.to_chain, load_calls(args.calls), dry_run=args.dry_run, **attribute_kwargs
            )
        case "message":
            if args.payload_file:
                payload = decode_hex(Path(args.payload_file).read_text())
            else:
                payload = decode_hex(args.payload)
            result = await sender.send_message(
                args.to_chain,
                args.to,
                payload,
                interop_value=args.interop_value,
                indirect=args.indirect,
                dry_run=args.dry_run,
                **attribute_kwargs,
            )
    print_json(result.to_dict())


async def cmd_tx_show(args: argparse.Namespace, config: RelayConfig) -> None:
    chain = config.source_chain if args.chain == "source" else config.destination_chain
    client = ChainClient(chain.rpc_url, request_timeout=config.request_timeout)
    receipt = await client.get_transaction_receipt(args.tx)
    if receipt is None:
        raise RpcError(f"receipt not found for {args.tx}")
    processor = EventProcessor(interop_center=config.addresses.interop_center)
    print_json(processor.transaction_view(args.tx, receipt))


async def cmd_root_wait(args: argparse.Namespace, config: RelayConfig) -> None:
    expected_root = decode_hex(args.expected_root)
    if len(expected_root) != 32:
        raise ValueError(f"expected root must be 32 bytes, got {len(expected_root)}")
    waits = dataclasses.replace(
        config.waits,
        timeout_ms=args.timeout_ms or config.waits.timeout_ms,
        poll_interval_ms=args.poll_ms or config.waits.poll_interval_ms,
    )
    relayer = BundleRelayer.from_config(dataclasses.replace(config, waits=waits))
    await relayer.wait_for_interop_root(args.source_chain, args.batch, expected_root)
    print_json({
        "sourceChainId": str(args.source_chain),
        "batch": args.batch,
        "root": format_hex(expected_root),
        "status": "available",
    })


def cmd_attributes(args: argparse.Namespace) -> None:
    call_attributes, total_value = build_call_attributes(args.interop_value, args.indirect)
    bundle_attributes = build_bundle_attributes(
        args.chain_id, **bundle_attribute_kwargs(args.execution_address, args.unbundler)
    )
    print_json({
        "callAttributes": [format_hex(a) for a in call_attributes],
        "value": str(total_value),
        "bundleAttributes": [format_hex(a) for a in bundle_attributes],
    })


def cmd_asset_id(args: argparse.Namespace) -> None:
    asset_id = encode_asset_id(args.chain_id, args.token, args.native_token_vault)
    print_json({"assetId": format_hex(asset_id)})


def add_attribute_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--execution-address", help=f"Address or '{PERMISSIONLESS}'")
    parser.add_argument("--unbundler", help="Unbundler address")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Interop bundle relay - move bundles between chains",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  SOURCE_RPC_URL               - RPC endpoint of the source chain
  DESTINATION_RPC_URL          - RPC endpoint of the destination chain
  INTEROP_CENTER_ADDRESS       - Interop center (default: 0x...010010)
  INTEROP_HANDLER_ADDRESS      - Interop handler (default: 0x...01000d)
  INTEROP_ROOT_STORAGE_ADDRESS - Interop root storage (default: 0x...010008)
  POLL_INTERVAL_MS             - Poll interval (default: 1000)
  TIMEOUT_MS                   - Wait deadline (default: 300000)
  FINALIZATION_POLL_MS         - Finalization poll interval (default: 100)
  PRIVATE_KEY_ENV              - Name of the variable holding the signer key (default: PRIVATE_KEY)
  LOG_LEVEL                    - Logging level (can be overridden with --log-level)
        """
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    relay = sub.add_parser("relay", help="Relay a bundle end to end")
    relay.add_argument("--tx", required=True, help="Source transaction hash")
    relay.add_argument("--mode", choices=["verify", "execute"], default="execute")
    relay.add_argument("--msg-index", type=int, default=0, help="L2->L1 message index")
    relay.add_argument("--dry-run", action="store_true", help="Simulate instead of sending")
    relay.add_argument("--wait-status", action="store_true", help="Read bundle status after submission")
    relay.add_argument("--out", help="Directory for bundle.hex, proof.json and relay_summary.json")

    watch = sub.add_parser("watch", help="Follow a bundle without submitting")
    watch.add_argument("--tx", required=True, help="Source transaction hash")
    watch.add_argument("--msg-index", type=int, default=0)
    watch.add_argument("--until", choices=["verified", "executed"])

    status = sub.add_parser("status", help="Read bundle status")
    status.add_argument("--bundle-hash", required=True)
    status.add_argument("--calls", type=int, help="Number of calls to query")

    extract = sub.add_parser("extract", help="Decode the bundle of a source transaction")
    extract.add_argument("--tx", required=True)
    extract.add_argument("--out", help="File for the encoded bundle hex")

    proof = sub.add_parser("proof", help="Build the inclusion proof of a source transaction")
    proof.add_argument("--tx", required=True)
    proof.add_argument("--msg-index", type=int, default=0)
    proof.add_argument("--out", help="File for proof.json")

    explain_cmd = sub.add_parser("explain", help="Pre-flight checks for a bundle and proof")
    explain_cmd.add_argument("--bundle", required=True, help="Bundle hex or path")
    explain_cmd.add_argument("--proof", required=True, help="Proof JSON or path")

    bundle = sub.add_parser("bundle", help="Verify or execute a saved bundle and proof")
    bundle.add_argument("action", choices=["verify", "execute"])
    bundle.add_argument("--bundle", required=True, help="Bundle hex or path to bundle.hex")
    bundle.add_argument("--proof", required=True, help="Proof JSON or path to proof.json")
    bundle.add_argument("--handler", help="Interop handler override")
    bundle.add_argument("--center", help="Interop center override for the proof sender")
    bundle.add_argument("--dry-run", action="store_true", help="Simulate instead of sending")

    send = sub.add_parser("send", help="Start a bundle or message on the source chain")
    send_sub = send.add_subparsers(dest="kind", required=True)
    send_bundle = send_sub.add_parser("bundle", help="sendBundle from a calls.json file")
    send_bundle.add_argument("--to-chain", type=int, required=True, help="Destination chain id")
    send_bundle.add_argument("--calls", required=True, help="Path to calls.json")
    add_attribute_flags(send_bundle)
    send_bundle.add_argument("--dry-run", action="store_true", help="Simulate and print the bundle hash")
    send_message = send_sub.add_parser("message", help="sendMessage to one recipient")
    send_message.add_argument("--to-chain", type=int, required=True, help="Destination chain id")
    send_message.add_argument("--to", required=True, help="Recipient address on the destination chain")
    payload = send_message.add_mutually_exclusive_group(required=True)
    payload.add_argument("--payload", help="Payload hex")
    payload.add_argument("--payload-file", help="File holding the payload hex")
    send_message.add_argument("--interop-value", type=int)
    send_message.add_argument("--indirect", type=int)
    add_attribute_flags(send_message)
    send_message.add_argument("--dry-run", action="store_true", help="Simulate and print the send id")

    tx_show = sub.add_parser("tx-show", help="Decode the interop events of a transaction")
    tx_show.add_argument("--tx", required=True)
    tx_show.add_argument("--chain", choices=["source", "destination"], default="source")

    root_wait = sub.add_parser("root-wait", help="Wait for a batch root on the destination chain")
    root_wait.add_argument("--source-chain", type=int, required=True, help="Source chain id")
    root_wait.add_argument("--batch", type=int, required=True, help="L1 batch number")
    root_wait.add_argument("--expected-root", required=True)
    root_wait.add_argument("--timeout-ms", type=int, help="Deadline (default: TIMEOUT_MS)")
    root_wait.add_argument("--poll-ms", type=int, help="Poll interval (default: POLL_INTERVAL_MS)")

    attributes = sub.add_parser("attributes", help="Encode call and bundle attributes")
    attributes.add_argument("--chain-id", type=int, required=True, help="Destination chain id")
    attributes.add_argument("--interop-value", type=int)
    attributes.add_argument("--indirect", type=int)
    add_attribute_flags(attributes)

    asset_id = sub.add_parser("asset-id", help="Derive the asset id of a token")
    asset_id.add_argument("--chain-id", type=int, required=True, help="Origin chain id of the token")
    asset_id.add_argument("--token", required=True, help="Token address")
    asset_id.add_argument("--native-token-vault", default=DEFAULT_NATIVE_TOKEN_VAULT)

    return parser


COMMANDS = {
    "relay": cmd_relay,
    "watch": cmd_watch,
    "status": cmd_status,
    "extract": cmd_extract,
    "proof": cmd_proof,
    "explain": cmd_explain,
    "bundle": cmd_bundle,
    "send": cmd_send,
    "tx-show": cmd_tx_show,
    "root-wait": cmd_root_wait,
}

# Commands that need no RPC configuration
OFFLINE_COMMANDS = {
    "attributes": cmd_attributes,
    "asset-id": cmd_asset_id,
}


def load_config() -> RelayConfig:
    """Load configuration from the environment, exiting with guidance if it is invalid."""
    try:
        config: RelayConfig = RelayConfig.from_env()
    except ValueError as e:
        logger.error(f"Configuration Error: {e}")
        logger.error("Please check your environment variables:")
        logger.error("  - SOURCE_RPC_URL: RPC endpoint of the source chain")
        logger.error("  - DESTINATION_RPC_URL: RPC endpoint of the destination chain")
        sys.exit(1)
    config.log_config()
    return config


async def main() -> None:
    """Parse arguments, load configuration and run the selected command."""
    args: argparse.Namespace = build_parser().parse_args()
    setup_logging(args.log_level)

    try:
        if args.command in OFFLINE_COMMANDS:
            OFFLINE_COMMANDS[args.command](args)
            return

        config = load_config()
        await COMMANDS[args.command](args, config)

    except InteropError as e:
        logger.error(f"{type(e).__name__}: {e}")
        sys.exit(1)

    except ValueError as e:
        logger.error(f"Invalid argument: {e}")
        sys.exit(1)

    except KeyboardInterrupt:
        logger.info("\nReceived interrupt signal, shutting down...")
        sys.exit(0)


if __name__ == "__main__":
    asyncio.run(main())
