#!/usr/bin/env python3
"""Command line interface for bridging ONFTs locally"""

import argparse
import asyncio
import signal
import sys
from typing import List, Optional, Tuple

from onft_bridge.config import settings
from onft_bridge.core.bridge.chain_registry import UnknownChainError, get_chain
from onft_bridge.core.bridge.models import (
    BatchBridgeProgress,
    BridgeResult,
    ChainDescriptor,
    ContractType,
    TransferRequest,
)
from onft_bridge.core.bridge.service import BridgeService
from onft_bridge.core.gas.models import GasBreakdown
from onft_bridge.core.recovery.errors import QuoteUnavailableError, classify_error
from onft_bridge.core.tracking.models import MessageState
from onft_bridge.logging_config import setup_logging
from onft_bridge.providers.signer import LocalAccountSigner


def print_breakdown(breakdown: GasBreakdown, title: str = "Gas Breakdown"):
    """Pretty print a gas breakdown"""
    print(f"\n⛽ {title}")
    print("-" * 50)
    print(f"Source chain gas:      {breakdown.source_chain_gas:.8f} {breakdown.currency}")
    print(f"Protocol fee:          {breakdown.protocol_fee:.8f} {breakdown.currency}")
    print(f"Destination execution: {breakdown.destination_execution_gas:.8f} {breakdown.currency}")
    print(f"Total:                 {breakdown.total_cost:.8f} {breakdown.currency}")


def print_result(result: BridgeResult):
    if result.success:
        print(f"✅ Token {result.token_id}: {result.transaction_hash}")
        if result.message_guid:
            print(f"   GUID: {result.message_guid}")
        if result.scan_url:
            print(f"   Scan: {result.scan_url}")
    else:
        error = result.error
        retry = f", retry in {error.suggested_delay_ms}ms" if error and error.suggested_delay_ms else ""
        print(f"❌ Token {result.token_id}: {error.kind.value if error else 'Unknown'}{retry}")
        if error:
            print(f"   {error.user_message or error.message}")
        if result.scan_url:
            print(f"   Scan: {result.scan_url}")


def print_progress(progress: BatchBridgeProgress):
    done = progress.completed + progress.failed
    print(f"[{done}/{progress.total}] ", end="")
    print_result(progress.results[-1])


def build_requests(args) -> List[TransferRequest]:
    return [
        TransferRequest.create(
            token_id,
            args.nft,
            args.bridge or args.nft,
            original_collection_address=args.collection,
        )
        for token_id in args.token_ids
    ]


def resolve_chains(args) -> Optional[Tuple[ChainDescriptor, ChainDescriptor]]:
    """Look up both chains, printing an error and returning None if either is unknown"""
    try:
        return get_chain(args.source), get_chain(args.destination)
    except UnknownChainError as e:
        print(f"❌ {e}")
        return None


async def cli_estimate(args):
    chains = resolve_chains(args)
    if chains is None:
        return 1
    source, destination = chains
    service = BridgeService()
    print(f"🔍 Quoting {len(args.token_ids)} item(s) {source.name} → {destination.name}...")

    breakdowns = []
    try:
        for request in build_requests(args):
            breakdown = await service.estimate_gas(request, source, destination, recipient=args.recipient)
            breakdowns.append(breakdown)
            print_breakdown(breakdown, f"Token {request.token_id}")
    except QuoteUnavailableError as e:
        print(f"❌ {e.classified.kind.value}: {e.classified.message}")
        return 1
    finally:
        await service.close()

    if len(breakdowns) > 1:
        print_breakdown(service.aggregate_gas(breakdowns), "Batch Total")
    return 0


async def cli_bridge(args):
    if not settings.has_signer_key:
        print("❌ Set SIGNER_PRIVATE_KEY (or PRIVATE_KEY) to sign transactions")
        return 1

    chains = resolve_chains(args)
    if chains is None:
        return 1
    source, destination = chains

    service = BridgeService()
    signer = LocalAccountSigner(settings.signer_private_key, service.rpc)
    recipient = args.recipient or signer.address

    # Ctrl+C stops the batch before the next item; submitted items are not undone
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
    except NotImplementedError:
        pass

    print(f"🌉 Bridging {len(args.token_ids)} item(s) {source.name} → {destination.name} for {recipient}")
    try:
        result = await service.run_batch(
            build_requests(args),
            source,
            destination,
            recipient,
            signer,
            print_progress,
            cancel_event=cancel_event,
        )
    finally:
        await service.close()

    print(f"\nSucceeded: {result.succeeded}/{result.total}, failed: {result.failed}")
    if result.total_gas_breakdown:
        print_breakdown(result.total_gas_breakdown, "Total Spent (successful items)")
    return 0 if result.success else 2


async def cli_track(args):
    chains = resolve_chains(args)
    if chains is None:
        return 1
    source, destination = chains
    service = BridgeService()
    stream = service.track_message(
        args.guid,
        source,
        destination,
        destination_contract=args.destination_contract,
        max_poll_seconds=args.max_seconds,
    )

    print(f"📡 Tracking {args.guid}...")
    last = None
    try:
        async for snapshot in stream:
            last = snapshot
            note = f" ({snapshot.error})" if snapshot.error else ""
            print(f"   {snapshot.last_checked_at:%H:%M:%S} {snapshot.state.value}{note}")
    finally:
        await service.close()

    if last and last.state == MessageState.DELIVERED:
        print(f"✅ Delivered: {last.destination_tx_hash or 'n/a'}")
        return 0
    return 1


async def cli_detect(args):
    try:
        chain = get_chain(args.chain)
    except UnknownChainError as e:
        print(f"❌ {e}")
        return 1

    service = BridgeService()
    try:
        contract_type = await service.detect_contract_type(args.contract, chain)
        destinations = []
        if contract_type in (ContractType.ONFT, ContractType.ADAPTER):
            destinations = await service.get_available_destinations(args.contract, chain)
    finally:
        await service.close()

    print(f"🔎 {args.contract} on {chain.name}: {contract_type.value}")
    if destinations:
        print("   Peers configured for: " + ", ".join(d.name for d in destinations))
    elif contract_type in (ContractType.ONFT, ContractType.ADAPTER):
        print("   No peers configured")
    return 0


def cli_classify(args):
    payload = {"message": args.message}
    if args.code is not None:
        payload["code"] = args.code
    if args.data:
        payload["data"] = args.data
    classified = classify_error(payload, attempt=args.attempt)

    print(f"Kind:       {classified.kind.value}")
    print(f"Retryable:  {classified.retryable} (max {classified.max_retries})")
    print(f"Delay:      {classified.suggested_delay_ms}")
    if classified.revert_reason:
        print(f"Revert:     {classified.revert_reason}")
    print(f"Message:    {classified.user_message}")
    for step in classified.recovery:
        print(f" - {step}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="ONFT Bridge CLI")
    subparsers = parser.add_subparsers(dest="command")

    def add_transfer_args(sub):
        sub.add_argument("source", help="Source chain (id or alias)")
        sub.add_argument("destination", help="Destination chain (id or alias)")
        sub.add_argument("token_ids", nargs="+", help="Token ids to bridge")
        sub.add_argument("--nft", required=True, help="ONFT contract address")
        sub.add_argument("--bridge", help="Bridge/adapter contract (default: --nft)")
        sub.add_argument("--collection", help="Original collection address (adapter mode)")
        sub.add_argument("--recipient", help="Recipient on the destination chain")

    add_transfer_args(subparsers.add_parser("estimate", help="Quote gas and fees"))
    add_transfer_args(subparsers.add_parser("bridge", help="Bridge a batch of tokens"))

    track_parser = subparsers.add_parser("track", help="Track a message by GUID")
    track_parser.add_argument("guid", help="LayerZero message GUID")
    track_parser.add_argument("source", help="Source chain")
    track_parser.add_argument("destination", help="Destination chain")
    track_parser.add_argument("--max-seconds", type=float, help="Stop polling after this long")
    track_parser.add_argument(
        "--destination-contract",
        help="Destination ONFT; delivery is read from its ONFTReceived logs",
    )

    detect_parser = subparsers.add_parser("detect", help="Detect a contract type and its peers")
    detect_parser.add_argument("chain", help="Chain the contract is deployed on")
    detect_parser.add_argument("contract", help="Contract address")

    classify_parser = subparsers.add_parser("classify", help="Classify an error message")
    classify_parser.add_argument("message", help="Error message text")
    classify_parser.add_argument("--code", help="Provider error code")
    classify_parser.add_argument("--data", help="Revert data (hex)")
    classify_parser.add_argument("--attempt", type=int, default=0, help="Retry attempt number")

    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    setup_logging(log_format="console")
    command = args.command.lower()

    if command == "estimate":
        return await cli_estimate(args)

    elif command == "bridge":
        return await cli_bridge(args)

    elif command == "track":
        return await cli_track(args)

    elif command == "detect":
        return await cli_detect(args)

    elif command == "classify":
        return cli_classify(args)

    print(f"❌ Unknown command: {command}")
    parser.print_help()
    return 1


def run():
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
