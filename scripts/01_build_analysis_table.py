#!/usr/bin/env python3
"""
Step 1: Build the analysis table

Loads the per-wave survey, usage and location exports, derives usage
ratios, aggregates 14-day windows before each survey, resolves cross-wave
identities and writes the analysis table with its drop report.

Usage:
    python scripts/01_build_analysis_table.py --config configs/study.yaml
    python scripts/01_build_analysis_table.py --config configs/study.yaml window_days=7

Outputs:
    - outputs/processed/analysis_table.parquet   (one row per eligible survey event)
    - outputs/processed/identity_map.csv         (pseudonymous id -> canonical id)
    - outputs/processed/daily_features.parquet   (derived subject-day ratios)
    - outputs/processed/rejected_days.csv        (corrupt subject-days with reason)
    - outputs/processed/dropped_events.csv       (survey events removed by a gate)
    - outputs/processed/report.json              (counts per gate)
"""

import argparse
import sys
from datetime import datetime
from pathlib import Path

from loguru import logger

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from unlock_anxiety.config import load_config
from unlock_anxiety.data.loaders import WaveStudyLoader
from unlock_anxiety.pipeline import run_pipeline


def setup_logging(output_dir: Path) -> None:
    """Configure logging."""
    log_file = output_dir / "logs" / f"build_table_{datetime.now():%Y%m%d_%H%M%S}.log"
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logger.add(log_file, rotation="10 MB", level="DEBUG")
    logger.info(f"Logging to {log_file}")


def main():
    parser = argparse.ArgumentParser(description="Build the unlock/anxiety analysis table")
    parser.add_argument("--config", type=Path, default=Path("configs/study.yaml"))
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Raw export directory (overrides data.root)")
    parser.add_argument("--output-dir", type=Path, default=None)
    parser.add_argument("overrides", nargs="*", help="Config overrides, e.g. window_days=7")
    args = parser.parse_args()

    config = load_config(args.config, args.overrides)
    output_dir = args.output_dir or Path(config.output_dir)
    processed_dir = output_dir / "processed"
    processed_dir.mkdir(parents=True, exist_ok=True)
    setup_logging(output_dir)

    data_dir = args.data_dir or Path(config.data.root)
    logger.info(f"Loading study from {data_dir}")
    loader = WaveStudyLoader(data_dir, config)
    tables = loader.load_all()

    output = run_pipeline(tables, config)

    output.table.to_parquet(processed_dir / "analysis_table.parquet", index=False)
    output.identity.to_frame().to_csv(processed_dir / "identity_map.csv", index=False)
    output.daily.to_parquet(processed_dir / "daily_features.parquet", index=False)
    output.rejected_days.to_csv(processed_dir / "rejected_days.csv", index=False)
    output.dropped_events.to_csv(processed_dir / "dropped_events.csv", index=False)
    output.report.save(processed_dir / "report.json")

    logger.info(f"Outputs written to {processed_dir}")


if __name__ == "__main__":
    main()
