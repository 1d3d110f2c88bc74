#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Command-line batch conversion.

Usage:
    code-migrator run uploads/oracle.zip --kind oracle-to-snowflake
    code-migrator run scripts.zip --kind batch-to-idmc --concurrency 4 --json
    code-migrator kinds
"""

import sys
import json
import asyncio
import argparse
from typing import Optional, List

from tqdm import tqdm

from config.logging_config import get_logger
from config.settings import settings
from ai_providers import create_provider

from migrator.archive import ZipArchiver
from migrator.batch import (
    BatchConversionError,
    BatchOrchestrator,
    JobRegistry,
    OrchestratorConfig,
    ProgressBroadcaster,
)
from migrator.converters import LLMConverter
from migrator.profiles import PROFILES, get_profile

logger = get_logger(__name__)


def cmd_kinds(args) -> int:
    """List conversion kinds"""
    for profile in PROFILES.values():
        extensions = " ".join(sorted(profile.extensions))
        print(f"{profile.name:<22} {profile.description}")
        print(f"{'':<22} files: {extensions}, workers: {profile.max_concurrency}")
    return 0


async def run_batch(args) -> int:
    profile = get_profile(args.kind)

    config = OrchestratorConfig.from_settings(settings)
    if args.concurrency:
        config.max_concurrency = args.concurrency
    if args.item_timeout:
        config.item_timeout = args.item_timeout
    if args.deadline:
        config.deadline = args.deadline

    provider = create_provider(settings, model=args.model)
    broadcaster = ProgressBroadcaster()
    registry = JobRegistry(broadcaster=broadcaster)
    orchestrator = BatchOrchestrator(
        registry=registry,
        profile=profile,
        converter=LLMConverter(provider, profile),
        archiver=ZipArchiver(settings.temp_dir, args.output_dir or settings.zips_dir),
        config=config,
    )

    job_id = orchestrator.create_job()
    bar = tqdm(
        total=100,
        desc=profile.name,
        unit="%",
        disable=args.json,
        bar_format="{l_bar}{bar}| {n:.0f}% [{elapsed}] {postfix}",
    )

    def on_event(event):
        bar.n = event["overall_progress"]
        bar.set_postfix_str(event["current_step"], refresh=False)
        bar.refresh()

    broadcaster.subscribe(job_id, on_event)

    try:
        _, result = await orchestrator.run(args.bundle, job_id=job_id)
    except BatchConversionError as e:
        bar.close()
        print(f"❌ Job {job_id} failed: {e}", file=sys.stderr)
        return 1
    finally:
        await provider.close()

    bar.close()

    if args.json:
        print(json.dumps(result.to_dict(include_content=False), indent=2))
        return 0

    print(f"\n✅ Job {job_id} completed")
    print(f"   Files:     {result.total_files}")
    print(f"   Converted: {result.processed_files}")
    print(f"   Failed:    {result.failed_files}")
    print(f"   Success:   {result.success_rate}%")
    if result.bundle_path:
        print(f"   Bundle:    {result.bundle_path}")
    if result.packaging_error:
        print(f"   ⚠️  Packaging failed: {result.packaging_error}")

    for failed in result.failed:
        print(f"   ✗ {failed.original}: {failed.error}")

    return 0


def cmd_run(args) -> int:
    """Run one batch in-process"""
    try:
        return asyncio.run(run_batch(args))
    except ValueError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="code-migrator",
        description="Parallel batch conversion of database code and scripts",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Run command
    run_parser = subparsers.add_parser('run', help='Convert every file in a zip bundle')
    run_parser.add_argument('bundle', help='Input zip path')
    run_parser.add_argument('--kind', '-k', required=True, choices=sorted(PROFILES), help='Conversion kind')
    run_parser.add_argument('--concurrency', type=int, help='Cap on parallel workers')
    run_parser.add_argument('--item-timeout', type=float, help='Seconds allowed per file')
    run_parser.add_argument('--deadline', type=float, help='Seconds allowed for the whole batch')
    run_parser.add_argument('--model', help='Model name (default from settings)')
    run_parser.add_argument('--output-dir', '-o', help='Where the output zip is written')
    run_parser.add_argument('--json', action='store_true', help='Print the result as JSON')

    # Kinds command
    subparsers.add_parser('kinds', help='List conversion kinds')

    args = parser.parse_args(argv)

    commands = {
        'run': cmd_run,
        'kinds': cmd_kinds,
    }

    if args.command not in commands:
        parser.print_help()
        return 1

    return commands[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
