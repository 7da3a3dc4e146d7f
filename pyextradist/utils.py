from typing import Callable, List, Optional, Union

import numpy as np
import pandas as pd
from scipy.special import gammaln, ndtr, ndtri

INV_SQRT_2PI = 1.0 / np.sqrt(2.0 * np.pi)
SQRT_2PI = np.sqrt(2.0 * np.pi)

INTERRUPT_CHECK_INTERVAL = 1000

_interrupt_handler: Optional[Callable[[], bool]] = None


class EvaluationInterrupted(RuntimeError):
    """Raised when the registered interrupt handler asks a long loop to stop."""


###########################
## Numeric primitives    ##
###########################


def norm_pdf(x: Union[np.ndarray, float]) -> Union[np.ndarray, float]:
    """Standard normal density."""
    return INV_SQRT_2PI * np.exp(-0.5 * np.square(x))


def norm_cdf(x: Union[np.ndarray, float]) -> Union[np.ndarray, float]:
    return ndtr(x)


def norm_ppf(p: Union[np.ndarray, float]) -> Union[np.ndarray, float]:
    return ndtri(p)


def lfactorial(x: Union[np.ndarray, float]) -> Union[np.ndarray, float]:
    """log(x!) through the log-gamma function."""
    return gammaln(np.asarray(x, dtype=float) + 1.0)


###########################
## Input coercion        ##
###########################


def as_float_array(values, name: str = "x") -> np.ndarray:
    """
    Flatten ``values`` into a 1-D float array.

    Missing markers (``None``, ``pandas.NA``, ``NaN``, ``NaT``) become ``NaN``,
    so lists and pandas objects with nullable dtypes can be passed directly.

    Parameters
    ----------
    values : array_like
        Scalar, sequence, ndarray or pandas object.
    name : str
        Argument name used in error messages.

    Returns
    -------
    arr : np.ndarray
        One-dimensional ``float64`` array.
    """
    arr = np.asarray(values)
    if arr.dtype == object:
        missing = pd.isna(arr)
        arr = np.where(missing, np.nan, arr)
    try:
        return np.asarray(arr, dtype=float).reshape(-1)
    except (TypeError, ValueError) as err:
        raise TypeError(f"`{name}` must contain numeric values.") from err


def as_prob_matrix(values, name: str = "prob") -> np.ndarray:
    """Coerce ``values`` to a 2-D float matrix; a vector is a single row."""
    arr = np.asarray(values)
    if arr.dtype == object:
        arr = np.where(pd.isna(arr), np.nan, arr)
    try:
        arr = np.asarray(arr, dtype=float)
    except (TypeError, ValueError) as err:
        raise TypeError(f"`{name}` must contain numeric values.") from err
    if arr.ndim == 0:
        return arr.reshape(1, 1)
    if arr.ndim == 1:
        return arr.reshape(1, -1)
    if arr.ndim > 2:
        raise ValueError(f"`{name}` must be a vector or a matrix; got {arr.ndim} dimensions.")
    return arr


###########################
## Recycling             ##
###########################


def recycle(*arrays: np.ndarray) -> List[np.ndarray]:
    """
    Recycle 1-D arrays to a common length.

    The output length is the largest input length and element ``i`` of every
    output is ``array[i % len(array)]``. Lengths do not have to divide each
    other. If any input is empty, every output is empty.
    """
    lengths = [a.shape[0] for a in arrays]
    if not lengths:
        return []
    if min(lengths) == 0:
        return [a[:0] for a in arrays]
    n = max(lengths)
    idx = np.arange(n)
    return [a if a.shape[0] == n else a[idx % a.shape[0]] for a in arrays]


def recycle_rows(matrix: np.ndarray, n: int) -> np.ndarray:
    """Recycle the rows of ``matrix`` to ``n`` rows (row ``i % nrow``)."""
    nrow = matrix.shape[0]
    if nrow == 0 or n == 0:
        return matrix[:0]
    if nrow == n:
        return matrix
    return matrix[np.arange(n) % nrow]


###########################
## Domain validation     ##
###########################


def is_integer(x: np.ndarray) -> np.ndarray:
    """Exact integrality test; non-finite values are never integers."""
    x = np.asarray(x, dtype=float)
    finite = np.isfinite(x)
    out = np.zeros(x.shape, dtype=bool)
    out[finite] = x[finite] == np.floor(x[finite])
    return out


def valid_probability(p: np.ndarray) -> np.ndarray:
    """Mask of values inside ``[0, 1]``; ``NaN`` counts as valid (missing)."""
    p = np.asarray(p, dtype=float)
    return np.isnan(p) | ((p >= 0.0) & (p <= 1.0))


def valid_nonnegative(x: np.ndarray) -> np.ndarray:
    x = np.asarray(x, dtype=float)
    return np.isnan(x) | (x >= 0.0)


def valid_positive(x: np.ndarray) -> np.ndarray:
    x = np.asarray(x, dtype=float)
    return np.isnan(x) | (x > 0.0)


def any_missing(*arrays: np.ndarray) -> np.ndarray:
    """Elementwise ``True`` where any of the recycled arrays is ``NaN``."""
    mask = np.zeros(arrays[0].shape[0], dtype=bool)
    for arr in arrays:
        mask |= np.isnan(arr)
    return mask


def normalize_prob(prob: np.ndarray):
    """
    Normalize the rows of a probability matrix to sum to one.

    Parameters
    ----------
    prob : np.ndarray (m, k)
        Non-normalized probability rows.

    Returns
    -------
    normalized : np.ndarray (m, k)
        ``prob / rowsum``; rows that are missing or invalid are all ``NaN``.
    missing : np.ndarray (m,)
        Rows containing a ``NaN`` entry.
    invalid : np.ndarray (m,)
        Rows with a negative entry or a total that is zero or not finite.
    """
    prob = np.asarray(prob, dtype=float)
    missing = np.isnan(prob).any(axis=1)
    with np.errstate(invalid="ignore"):
        total = prob.sum(axis=1)
        invalid = ~missing & (
            (prob < 0.0).any(axis=1) | ~np.isfinite(total) | (total <= 0.0)
        )
    normalized = np.full(prob.shape, np.nan)
    good = ~missing & ~invalid
    normalized[good] = prob[good] / total[good, None]
    return normalized, missing, invalid


###########################
## Cooperative cancelling ##
###########################


def set_interrupt_handler(handler: Optional[Callable[[], bool]]) -> None:
    """
    Register a callable polled by long-running loops.

    The handler is called every ``INTERRUPT_CHECK_INTERVAL`` iterations and
    the loop aborts with :class:`EvaluationInterrupted` when it returns a
    truthy value. Pass ``None`` to remove the handler.
    """
    global _interrupt_handler
    if handler is not None and not callable(handler):
        raise TypeError("`handler` must be callable or None.")
    _interrupt_handler = handler


def poll_interrupt(where: str = "") -> None:
    """Call the interrupt handler once, raising if it asks to stop."""
    handler = _interrupt_handler
    if handler is not None and handler():
        raise EvaluationInterrupted(f"Evaluation interrupted{where}.")


def check_interrupt(iteration: int) -> None:
    """Poll the interrupt handler every ``INTERRUPT_CHECK_INTERVAL`` iterations."""
    if iteration % INTERRUPT_CHECK_INTERVAL == 0:
        poll_interrupt(f" at iteration {iteration}")
