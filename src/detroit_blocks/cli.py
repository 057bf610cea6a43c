#!/usr/bin/env python3
"""
Detroit Block Analytics CLI

Command-line interface for assigning parcels to blocks, detecting blocks from
street geometry and pulling data from the city geodata API.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import pandas as pd

from . import __version__
from .blocks import AssignmentAccumulator, AssignmentOptions, BlockValidator, assign_blocks
from .config_manager import BlockConfig, ConfigManager
from .geometry import GeometricBlockDetector
from .ingest import GeodataClient, ParcelLoader, read_parcels, read_streets, write_blocks
from .pipeline import BlockPipeline
from .storage import BlockStore

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path("detroit_blocks.db")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="detroit-blocks",
        description="Detroit Block Analytics - group parcels into blocks and track block statistics",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Assign sales records to 100-number blocks and store them
  %(prog)s assign data/property_sales.csv

  # Use natural boundaries and write assignments without storing
  %(prog)s assign data/property_sales.csv --natural --no-store --output blocks.csv

  # Detect blocks from local street and parcel layers
  %(prog)s detect --streets streets.gpkg --parcels parcels.gpkg --output blocks.gpkg

  # Pull streets/parcels from the geodata API
  %(prog)s --config blocks.yaml fetch --where "street_name LIKE 'WOODWARD%%'"

  # Write an example configuration
  %(prog)s init-config blocks.yaml
        """
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument(
        '-c', '--config',
        type=Path,
        help='Configuration YAML file (default: built-in settings)'
    )
    parser.add_argument(
        '--db',
        type=Path,
        help=f'Block database path (default: from config, or {DEFAULT_DB_PATH})'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable debug logging'
    )

    subparsers = parser.add_subparsers(dest='command', required=True)

    # assign
    assign = subparsers.add_parser('assign', help='Assign parcel CSV records to address blocks')
    assign.add_argument('csv', type=Path, help='Parcel/sales CSV file')
    assign.add_argument(
        '--natural',
        action='store_true',
        help='Split blocks at gaps in house numbering'
    )
    assign.add_argument('--block-size', type=int, help='House numbers per block (default: 100)')
    assign.add_argument('--gap-threshold', type=int, help='Gap that starts a new block (default: 50)')
    assign.add_argument(
        '-o', '--output',
        type=Path,
        help='Write assignments (CSV/JSON with --no-store) or the run summary (JSON)'
    )
    assign.add_argument(
        '--no-store',
        action='store_true',
        help='Do not write to the block database'
    )

    # detect
    detect = subparsers.add_parser('detect', help='Detect blocks from street geometry')
    detect.add_argument('--streets', type=Path, required=True, help='Street centerline layer')
    detect.add_argument('--parcels', type=Path, help='Parcel layer to join to blocks')
    detect.add_argument('-o', '--output', type=Path, help='Write blocks to GPKG/GeoJSON/Shapefile')
    detect.add_argument(
        '--no-store',
        action='store_true',
        help='Do not write to the block database'
    )

    # fetch
    fetch = subparsers.add_parser('fetch', help='Detect blocks from the geodata API')
    fetch.add_argument('--where', default='1=1', help='Street filter (default: 1=1)')
    fetch.add_argument('--full', action='store_true', help='Record as a full run')
    fetch.add_argument(
        '--test-connections',
        action='store_true',
        help='Only check that the configured endpoints respond'
    )

    # init-config
    init_config = subparsers.add_parser('init-config', help='Write an example configuration')
    init_config.add_argument('path', type=Path, help='Output YAML path')

    return parser


def load_config(args: argparse.Namespace) -> BlockConfig:
    """Load configuration from --config (or defaults) and apply CLI overrides."""
    manager = ConfigManager()
    if args.config:
        config = manager.load(args.config)
    else:
        config = manager.from_dict({
            "name": "detroit_blocks",
            "database": {"db_path": str(DEFAULT_DB_PATH)},
        })

    if args.db:
        config.db_path = args.db
    return config


def _write_json(path: Path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(data, f, indent=2, default=str)


def cmd_assign(args: argparse.Namespace, config: BlockConfig) -> int:
    if args.natural:
        config.assignment["use_natural_boundaries"] = True
    if args.block_size is not None:
        config.assignment["block_size"] = args.block_size
    if args.gap_threshold is not None:
        config.assignment["gap_threshold"] = args.gap_threshold

    loader = ParcelLoader(
        chunk_size=int(config.ingest["chunk_size"]),
        require_coordinates=bool(config.ingest["require_coordinates"]),
    )
    stats = loader.csv_stats(args.csv)
    logger.info(
        f"Loading {stats['file_path']} ({stats['file_size_mb']} MB, "
        f"~{stats['estimated_rows']:,} rows)"
    )

    if args.no_store:
        return _assign_without_store(args, config, loader)

    store = BlockStore(config.db_path)
    pipeline = BlockPipeline(store, config)
    result = pipeline.run_address_assignment(loader.iter_chunks(args.csv))

    summary = result.summary
    print(f"\nRun {result.run_id}: {result.status.value}")
    print(f"  Parcels:      {summary.total_parcels:,}")
    print(f"  Assigned:     {summary.successfully_assigned:,}")
    print(f"  Parse errors: {summary.parse_errors:,}")
    print(f"  Blocks:       {result.blocks_processed:,} ({result.errors_count} errors)")
    print(f"  Streets:      {summary.unique_streets:,}")
    print(f"  Unique parcels: {result.unique_parcels:,}")

    leaders = result.top_blocks()
    if leaders:
        print("\nTop blocks by sales:")
        for rank, (block_id, count) in enumerate(leaders, start=1):
            print(f"  {rank:2d}. {block_id}: {count} sales")

    if args.output:
        _write_json(args.output, result.to_dict())
        print(f"\nRun summary written to {args.output}")
    return 0 if result.errors_count == 0 else 1


def _assign_without_store(args: argparse.Namespace, config: BlockConfig, loader: ParcelLoader) -> int:
    options = AssignmentOptions.from_config(config.assignment)
    accumulator = AssignmentAccumulator()
    assigned = []

    for chunk in loader.iter_chunks(args.csv):
        result = assign_blocks(chunk, options)
        accumulator.merge(result)
        assigned.extend(result.to_dict()["assigned"])

    summary = accumulator.summary()
    report = BlockValidator.from_config(config.validation).validate_stats(accumulator.block_stats)

    print(f"\nAssigned {summary.successfully_assigned:,}/{summary.total_parcels:,} parcels "
          f"to {summary.unique_blocks:,} blocks on {summary.unique_streets:,} streets")
    print(f"  Parse errors: {summary.parse_errors:,}")
    print(f"  Validation issues: {len(report.issues):,}")

    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        if args.output.suffix.lower() == '.json':
            _write_json(args.output, {
                "summary": summary.to_dict(),
                "block_stats": {
                    block_id: stats.to_dict()
                    for block_id, stats in accumulator.block_stats.items()
                },
                "validation": report.to_dict(),
                "assigned": assigned,
            })
        else:
            df = pd.json_normalize(assigned)
            df.to_csv(args.output, index=False)
        print(f"\nAssignments written to {args.output}")
    return 0


def cmd_detect(args: argparse.Namespace, config: BlockConfig) -> int:
    streets = read_streets(args.streets)
    parcels = read_parcels(args.parcels) if args.parcels else []

    # Every street is a cross street candidate for every other street
    if args.no_store:
        detector = GeometricBlockDetector.from_config(config.geometry)
        result = detector.detect_blocks(streets, streets, parcels)
        blocks = result.blocks
        print(f"\nDetected {len(blocks):,} blocks on {len(streets):,} streets")
        if parcels:
            print(f"  Unassigned parcels: {len(result.unassigned_parcels):,}")
    else:
        store = BlockStore(config.db_path)
        pipeline = BlockPipeline(store, config)
        run = pipeline.run_geometric(streets, streets, parcels)
        detector = pipeline.detector
        blocks = run.detection.blocks
        print(f"\nRun {run.run_id}: {run.status.value}")
        print(f"  Blocks:             {run.blocks_processed:,} ({run.errors_count} errors)")
        print(f"  Parcels:            {run.parcels_processed:,}")
        print(f"  Unassigned parcels: {run.unassigned_parcels:,}")

    if args.output:
        write_blocks(blocks, args.output, detector.projector)
        print(f"\nBlocks written to {args.output}")
    return 0


def cmd_fetch(args: argparse.Namespace, config: BlockConfig) -> int:
    client = GeodataClient.from_config(config.api)
    if not client.endpoints:
        print("No API endpoints configured (set api.endpoints or the *_API environment variables)",
              file=sys.stderr)
        return 2

    if args.test_connections:
        results = client.test_connections()
        for name, status in results.items():
            marker = "OK" if status["success"] else "FAILED"
            print(f"  {name:<10} {marker:<7} {status['endpoint']}")
        return 0 if all(status["success"] for status in results.values()) else 1

    store = BlockStore(config.db_path)
    pipeline = BlockPipeline(store, config)
    run_type = "full" if args.full else "incremental"
    result = pipeline.run_remote(client, where=args.where, run_type=run_type)

    print(f"\nRun {result.run_id}: {result.status.value}")
    print(f"  Blocks:  {result.blocks_processed:,} ({result.errors_count} errors)")
    print(f"  Parcels: {result.parcels_processed:,}")
    return 0 if result.errors_count == 0 else 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args) if args.command != 'init-config' else None
    except (FileNotFoundError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    level = logging.DEBUG if args.verbose else getattr(logging, config.log_level if config else "INFO")
    logging.basicConfig(level=level, format="[%(levelname)s] %(message)s")

    commands = {
        'assign': cmd_assign,
        'detect': cmd_detect,
        'fetch': cmd_fetch,
    }

    if args.command == 'init-config':
        ConfigManager().save_example_config(args.path)
        print(f"Saved example configuration to {args.path}")
        return 0

    try:
        return commands[args.command](args, config)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
