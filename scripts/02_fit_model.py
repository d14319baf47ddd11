#!/usr/bin/env python3
"""
Step 2: Fit the anxiety severity model

Fits the configured regression on the analysis table written by step 1.

Usage:
    python scripts/02_fit_model.py --config configs/study.yaml
    python scripts/02_fit_model.py --method linear_mixed \
        --formula "severity ~ ratio_home_median + age + (1 | canonical_id)"

Outputs:
    - outputs/models/coefficients.csv
    - outputs/models/model_summary.json
"""

import argparse
import json
import sys
from datetime import datetime
from pathlib import Path

import pandas as pd
from loguru import logger

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from unlock_anxiety.analysis.regression import fit_linear_mixed, fit_ordinal
from unlock_anxiety.config import load_config


def setup_logging(output_dir: Path) -> None:
    """Configure logging."""
    log_file = output_dir / "logs" / f"fit_model_{datetime.now():%Y%m%d_%H%M%S}.log"
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logger.add(log_file, rotation="10 MB", level="DEBUG")
    logger.info(f"Logging to {log_file}")


def main():
    parser = argparse.ArgumentParser(description="Fit the anxiety severity model")
    parser.add_argument("--config", type=Path, default=Path("configs/study.yaml"))
    parser.add_argument("--table", type=Path, default=None,
                        help="Analysis table (default: <output_dir>/processed/analysis_table.parquet)")
    parser.add_argument("--method", choices=["ordinal", "linear_mixed"], default=None)
    parser.add_argument("--formula", type=str, default=None)
    parser.add_argument("--output-dir", type=Path, default=None)
    args = parser.parse_args()

    config = load_config(args.config)
    output_dir = args.output_dir or Path(config.output_dir)
    model_dir = output_dir / "models"
    model_dir.mkdir(parents=True, exist_ok=True)
    setup_logging(output_dir)

    table_path = args.table or output_dir / "processed" / "analysis_table.parquet"
    table = pd.read_parquet(table_path)
    logger.info(f"Loaded analysis table: {len(table)} rows from {table_path}")

    method = args.method or config.regression.method
    formula = args.formula or config.regression.formula
    if method == "ordinal":
        result = fit_ordinal(table, formula, link=config.regression.link)
    else:
        result = fit_linear_mixed(table, formula)

    result.to_frame().to_csv(model_dir / "coefficients.csv", index=False)
    with open(model_dir / "model_summary.json", "w") as f:
        json.dump(result.to_dict(), f, indent=2, default=float)

    logger.info("Coefficients:")
    for row in result.coefficients.itertuples(index=False):
        logger.info(
            f"  {row.term:<24} {row.coef:+.4f}  "
            f"[{row.ci_lower:+.4f}, {row.ci_upper:+.4f}]  p={row.p_value:.4f}"
        )


if __name__ == "__main__":
    main()
