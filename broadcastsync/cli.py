"""
BroadcastSync command line tool.

Usage:
    broadcastsync now [--timezone local|fixed_reference]
    broadcastsync check [--probe]

Exit codes:
    0  success
    1  manifest probe failed
    2  no playable source configured
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from pydantic import ValidationError

from broadcastsync import __version__
from broadcastsync.config import BroadcastSyncConfig, load_config
from broadcastsync.exceptions import ConfigurationError, DeliveryError
from broadcastsync.playout.clock import BroadcastClock, TimezoneMode, part_index_to_key
from broadcastsync.playout.plan import DeliveryPlanSelector, SourceDescriptors
from broadcastsync.preferences import PreferenceStore
from broadcastsync.streaming.manifest_probe import ManifestProbe
from broadcastsync.streaming.retry_manager import RetryConfig
from broadcastsync.utils.logging_setup import setup_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_PROBE_FAILED = 1
EXIT_CONFIGURATION = 2


def _resolve_timezone(config: BroadcastSyncConfig, name: Optional[str]) -> TimezoneMode:
    reference = config.timezone.reference_offset_seconds
    if name:
        return TimezoneMode.from_name(name, reference)
    store = PreferenceStore(config.preferences.path)
    if store.load() is not None:
        return store.get_with_defaults().to_timezone_mode(reference)
    return TimezoneMode.from_name(config.timezone.default_mode, reference)


def cmd_now(config: BroadcastSyncConfig, args: argparse.Namespace) -> int:
    """Print where the broadcast day is right now."""
    mode = _resolve_timezone(config, args.timezone)
    clock = BroadcastClock()
    now = clock.now(mode)
    offset = clock.current_offset(mode)

    print(f"Timezone mode: {mode.kind.value}")
    print(f"Broadcast time: {clock.format_time(now)}")
    print(f"Day offset: {offset}s")

    descriptors = SourceDescriptors.from_sources(config.sources.as_mapping())
    for delivery in descriptors.available_modes():
        if delivery.is_segmented:
            plan = clock.current_plan(mode, delivery.part_length_seconds)
            key = part_index_to_key(plan.part_index, delivery.part_count)
            print(f"  {delivery.value}: part {key} at {plan.offset_in_part}s")
        else:
            print(f"  {delivery.value}: seek to {offset}s")
    return EXIT_OK


def cmd_check(config: BroadcastSyncConfig, args: argparse.Namespace) -> int:
    """Validate the configured sources and show the mode that would be used."""
    descriptors = SourceDescriptors.from_sources(config.sources.as_mapping())
    selected = DeliveryPlanSelector(descriptors).select()

    print(f"Available modes: {', '.join(m.value for m in descriptors.available_modes())}")
    print(f"Selected mode: {selected.value}")

    if args.probe and descriptors.continuous:
        probe = ManifestProbe(
            supported_codecs=config.continuous.supported_codecs,
            timeout=config.continuous.probe_timeout_seconds,
            retry_config=RetryConfig(max_retries=config.continuous.probe_max_retries),
        )
        try:
            report = asyncio.run(probe.probe(descriptors.continuous))
        except DeliveryError as e:
            print(f"Manifest probe failed: {e}")
            return EXIT_PROBE_FAILED
        print(
            f"Manifest ok: {len(report.playable_variants)}/{len(report.variants)} "
            f"playable variants"
        )
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="broadcastsync",
        description="BroadcastSync day-cycle broadcast tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="Path to broadcastsync.yaml")
    parser.add_argument("--log-level", help="Override the configured log level")

    subparsers = parser.add_subparsers(dest="command", required=True)

    now_parser = subparsers.add_parser("now", help="Show the current broadcast position")
    now_parser.add_argument(
        "--timezone",
        choices=["local", "fixed_reference"],
        help="Timezone mode (defaults to saved preference, then config)",
    )
    now_parser.set_defaults(handler=cmd_now)

    check_parser = subparsers.add_parser("check", help="Validate configured sources")
    check_parser.add_argument(
        "--probe",
        action="store_true",
        help="Fetch the continuous manifest and check its codecs",
    )
    check_parser.set_defaults(handler=cmd_check)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = load_config(args.config)
    except ValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return EXIT_CONFIGURATION

    setup_logging(
        log_level=args.log_level or config.logging.level,
        log_file_name=config.logging.file,
        log_to_file=False,
        max_bytes=config.logging.max_bytes,
        backup_count=config.logging.backup_count,
        log_format=config.logging.format,
    )

    try:
        return args.handler(config, args)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIGURATION


if __name__ == "__main__":
    sys.exit(main())
