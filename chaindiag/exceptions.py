"""Error types raised by the diagnostics."""


class DataError(ValueError):
    """Malformed or inconsistent simulation results.

    Raised for missing fields, chain-count mismatches, negative sample counts,
    empty post-warmup slices and too few draws to estimate a variance.
    """
    pass


class NumericalError(ArithmeticError):
    """A diagnostic would divide by a zero or non-finite denominator."""
    pass


__all__ = ["DataError", "NumericalError"]
