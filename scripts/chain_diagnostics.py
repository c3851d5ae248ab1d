#!/usr/bin/env python
"""Convergence diagnostics for Stan CSV output and draw matrices."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import numpy as np
import pandas as pd

from chaindiag import CONFIG
from chaindiag.config import load_config
from chaindiag.autocovariance import get_autocovariance_backend
from chaindiag.backends import BackendNotAvailableError
from chaindiag.diagnostics import (
    effective_sample_size,
    effective_sample_size_matrix,
    split_rhat,
    split_rhat_matrix,
)
from chaindiag.exceptions import DataError, NumericalError
from chaindiag.stan_csv import read_comments, read_stan_csv
from chaindiag.summary import summarize

logger = logging.getLogger(__name__)


def load_matrix(path: str | Path) -> np.ndarray:
    """Load a ``(n_iter, n_chains)`` table from ``.npy`` or headerless CSV."""
    path = Path(path)
    if path.suffix == ".npy":
        return np.load(path)
    return pd.read_csv(path, header=None, comment="#").to_numpy(dtype=np.float64)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="MCMC convergence diagnostics")
    parser.add_argument("-c", "--config", help="Path to a config YAML file")
    parser.add_argument("-d", "--debug", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("ess", "Effective sample size of one parameter"),
        ("rhat", "Split R-hat of one parameter"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("param", help="Parameter name or index")
        p.add_argument("csv", nargs="+", help="Stan CSV files, one per chain")

    p = sub.add_parser("summary", help="Summary table of all parameters")
    p.add_argument("csv", nargs="+", help="Stan CSV files, one per chain")
    p.add_argument("-o", "--output", help="Write the table to this CSV file")

    for name, help_text in (
        ("ess-matrix", "Effective sample size of an (iterations x chains) table"),
        ("rhat-matrix", "Split R-hat of an (iterations x chains) table"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("matrix", help=".npy file or headerless CSV, one column per chain")

    p = sub.add_parser("comments", help="Print leading comment lines of a file")
    p.add_argument("file")
    p.add_argument("-n", "--max-lines", type=int, default=None, help="Maximum number of comments (-1 for all)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    cfg = load_config(args.config) if args.config else CONFIG

    logging.basicConfig(
        level=logging.DEBUG if args.debug else getattr(logging, cfg.logging.level.upper(), logging.INFO),
        format=cfg.logging.format,
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    try:
        backend = get_autocovariance_backend(cfg.computation.autocovariance, cfg.computation.backend)
        if args.command in ("ess", "rhat"):
            sim = read_stan_csv(args.csv)
            param = sim.param_index(args.param)
            if args.command == "ess":
                value = effective_sample_size(sim, param, backend=backend)
            else:
                value = split_rhat(sim, param)
            print(f"{value:.6g}")
        elif args.command == "summary":
            sim = read_stan_csv(args.csv)
            table = summarize(
                sim,
                backend=backend,
                rhat_threshold=cfg.diagnostics.rhat_threshold,
                min_ess=cfg.diagnostics.min_ess,
            )
            if args.output:
                table.to_csv(args.output)
                logger.info("Saved summary to %s", args.output)
            print(table.to_string())
        elif args.command == "ess-matrix":
            print(f"{effective_sample_size_matrix(load_matrix(args.matrix), backend=backend):.6g}")
        elif args.command == "rhat-matrix":
            print(f"{split_rhat_matrix(load_matrix(args.matrix)):.6g}")
        elif args.command == "comments":
            n = cfg.io.max_comment_lines if args.max_lines is None else args.max_lines
            for line in read_comments(args.file, n):
                print(line)
    except (BackendNotAvailableError, DataError, NumericalError, IndexError, KeyError, OSError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
