"""Reading Stan CSV output.

Stan writes one CSV file per chain. Sampler settings and adaptation results
are written as comment lines starting with ``#``; the draws follow a header
row naming the columns.
"""

from __future__ import annotations

import logging
import math
import re
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from chaindiag.config import CONFIG
from chaindiag.exceptions import DataError
from chaindiag.simulation import SimulationResult

logger = logging.getLogger(__name__)

_SETTING_RE = re.compile(r"^#\s*([A-Za-z_][A-Za-z0-9_]*)\s*=\s*(\S+)")


def read_comments(path: str | Path, n: Optional[int] = None) -> List[str]:
    """Read up to ``n`` comment lines from ``path``.

    A comment runs from the first ``#`` on a line to the end of that line, so
    text before the ``#`` is skipped. Lines without ``#`` are ignored.

    Args:
        path: File to read.
        n: Maximum number of comments to return; a negative value means no
            limit. Defaults to ``CONFIG.io.max_comment_lines``.

    Returns:
        The comments in file order, without line terminators.

    Raises:
        OSError: If the file cannot be opened.
    """
    if n is None:
        n = CONFIG.io.max_comment_lines
    try:
        fh = open(path, "r")
    except OSError as exc:
        raise OSError(f"Could not open {path}") from exc

    comments: List[str] = []
    with fh:
        for line in fh:
            if 0 <= n <= len(comments):
                break
            start = line.find("#")
            if start < 0:
                continue
            comments.append(line[start:].rstrip("\n"))
    return comments


def parse_settings(comments: Sequence[str]) -> Dict[str, str]:
    """Extract ``key = value`` pairs from Stan CSV comments.

    Only the first occurrence of a key is kept.
    """
    settings: Dict[str, str] = {}
    for comment in comments:
        match = _SETTING_RE.match(comment)
        if match and match.group(1) not in settings:
            settings[match.group(1)] = match.group(2)
    return settings


def _warmup_draws(settings: Dict[str, str], path) -> int:
    """Number of warmup draws stored in the file."""
    save_warmup = settings.get("save_warmup", "0").lower() in ("1", "true")
    if not save_warmup:
        return 0
    try:
        num_warmup = int(settings.get("num_warmup", "0"))
        thin = int(settings.get("thin", "1"))
    except ValueError as exc:
        raise DataError(f"invalid warmup settings in {path}: {exc}") from exc
    if thin < 1:
        raise DataError(f"invalid thin={thin} in {path}")
    return math.ceil(num_warmup / thin)


def read_stan_csv(
    paths: Sequence[str | Path],
    param_names: Optional[Sequence[str]] = None,
) -> SimulationResult:
    """Read Stan CSV files, one per chain, into a :class:`SimulationResult`.

    Args:
        paths: CSV files, one per chain.
        param_names: Columns to keep. Defaults to every column except the
            sampler bookkeeping columns (names ending in ``__`` other than
            ``lp__``).

    Raises:
        OSError: If a file cannot be opened.
        DataError: If a file has no draws or the files disagree on columns.
    """
    if isinstance(paths, (str, Path)):
        paths = [paths]
    if len(paths) == 0:
        raise DataError("at least one CSV file is needed")

    columns = None
    samples = []
    n_save = []
    warmup2 = []
    for path in paths:
        settings = parse_settings(read_comments(path, -1))
        df = pd.read_csv(path, comment="#")
        if df.empty:
            raise DataError(f"no draws found in {path}")
        if columns is None:
            columns = list(df.columns)
        elif list(df.columns) != columns:
            raise DataError(f"columns of {path} differ from those of {paths[0]}")

        warmup = _warmup_draws(settings, path)
        if warmup > len(df):
            raise DataError(f"{path} declares {warmup} warmup draws but holds {len(df)} draws")
        logger.info("Read %d draws (%d warmup) from %s", len(df), warmup, path)
        samples.append(df)
        n_save.append(len(df))
        warmup2.append(warmup)

    if param_names is None:
        param_names = [c for c in columns if c == "lp__" or not c.endswith("__")]
    missing = [p for p in param_names if p not in columns]
    if missing:
        raise DataError(f"columns not found in CSV files: {missing}")

    return SimulationResult(
        chains=len(paths),
        n_flatnames=len(param_names),
        n_save=n_save,
        warmup2=warmup2,
        samples=[[df[p].to_numpy(dtype=np.float64) for p in param_names] for df in samples],
        param_names=param_names,
    )


__all__ = [
    "read_comments",
    "parse_settings",
    "read_stan_csv",
]
