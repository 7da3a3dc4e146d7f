import warnings
from typing import Dict, List, Tuple

import numpy as np
from scipy.stats import rv_continuous, rv_discrete
from scipy.stats._distn_infrastructure import rv_continuous_frozen, rv_discrete_frozen

from .utils import any_missing, as_float_array, recycle, valid_probability

__all__ = [
    "ExtraContinuous",
    "ExtraContinuousFrozen",
    "ExtraDiscrete",
    "ExtraDiscreteFrozen",
    "NaNsProducedWarning",
    "NAsProducedWarning",
    "ImproperValueWarning",
    "DimensionMismatchError",
]


class NaNsProducedWarning(RuntimeWarning):
    """At least one element of a density/cumulative/quantile call was invalid."""


class NAsProducedWarning(RuntimeWarning):
    """At least one sampled element could not be generated."""


class ImproperValueWarning(UserWarning):
    """A value outside the support was passed where a support value is expected."""


class DimensionMismatchError(ValueError):
    """Co-indexed matrix inputs disagree in their number of columns."""


def warn_nans(invalid: np.ndarray) -> None:
    if np.any(invalid):
        warnings.warn("NaNs produced", NaNsProducedWarning, stacklevel=3)


def warn_nas(invalid: np.ndarray) -> None:
    if np.any(invalid):
        warnings.warn("NAs produced", NAsProducedWarning, stacklevel=3)


def sample_size(n) -> int:
    """
    Interpret the ``n`` argument of a sampler.

    An integer is the number of draws; a sequence of length > 1 means "as many
    draws as it has elements".
    """
    if np.ndim(n) > 0:
        arr = np.asarray(n).reshape(-1)
        if arr.size != 1:
            return int(arr.size)
        n = arr[0]
    try:
        value = float(n)
    except (TypeError, ValueError) as err:
        raise ValueError("`n` must be a non-negative integer.") from err
    if not np.isfinite(value) or value < 0 or value != np.floor(value):
        raise ValueError("`n` must be a non-negative integer.")
    return int(value)


def prepare_probabilities(q: np.ndarray, lower_tail: bool = True, log: bool = False) -> np.ndarray:
    """Map log-scale and upper-tail probabilities to lower-tail probabilities."""
    if log:
        q = np.exp(q)
    if not lower_tail:
        q = 1.0 - q
    return q


class ShapeParameters:
    """
    Shape-parameter and random-generator plumbing shared by every distribution.

    ``_shape_defaults`` fills parameters the caller leaves out and
    ``_shape_aliases`` maps alternative keyword names onto the declared shapes
    (``size`` cannot be a scipy shape name because ``rvs`` owns it).
    """

    _shape_defaults: Dict[str, float] = {}
    _shape_aliases: Dict[str, str] = {}

    def _shape_names(self) -> Tuple[str, ...]:
        shapespec = getattr(self, "shapes", None) or ""
        return tuple(name.strip() for name in shapespec.split(",") if name.strip())

    def _dist_name(self, caller: str) -> str:
        dist_name = getattr(self, "name", None)
        if dist_name:
            return f"{dist_name}.{caller}"
        return f"{self.__class__.__name__}.{caller}"

    def _parse_shapes(self, args, kwargs, caller) -> List:
        """Match positional and keyword shape parameters against ``shapes``."""
        names = self._shape_names()
        if len(args) > len(names):
            raise TypeError(
                f"{self._dist_name(caller)} takes {len(names)} shape parameter(s) "
                f"({', '.join(names)}); got {len(args)}."
            )
        remaining = {}
        for key, value in kwargs.items():
            name = self._shape_aliases.get(key, key)
            if name in remaining:
                raise TypeError(f"{self._dist_name(caller)} received `{name}` twice.")
            remaining[name] = value
        values = list(args)
        for name in names[: len(args)]:
            if name in remaining:
                raise TypeError(f"{self._dist_name(caller)} received `{name}` twice.")
        for name in names[len(args):]:
            if name in remaining:
                values.append(remaining.pop(name))
            elif name in self._shape_defaults:
                values.append(self._shape_defaults[name])
            else:
                raise TypeError(f"{self._dist_name(caller)} is missing the `{name}` parameter.")
        if remaining:
            unexpected = ", ".join(sorted(remaining))
            raise TypeError(f"{self._dist_name(caller)} got unexpected argument(s): {unexpected}.")
        return values

    def _init_rng(self, random_state):
        """
        Normalize the ``random_state`` argument to a NumPy ``Generator``.

        Accepts integers, ``RandomState`` instances, ``Generator`` objects, or
        ``None`` (in which case the distribution's cached generator is used).
        """
        candidate = random_state if random_state is not None else getattr(self, "_random_state", None)

        if isinstance(candidate, np.random.Generator):
            return candidate

        if isinstance(candidate, np.random.RandomState):
            seed = candidate.randint(0, 2**32)
            generator = np.random.default_rng(seed)
            if random_state is None:
                self._random_state = generator
            return generator

        if candidate is None:
            generator = np.random.default_rng()
            self._random_state = generator
            return generator

        try:
            generator = np.random.default_rng(candidate)
        except TypeError as err:
            raise TypeError(
                "random_state must be None, an int seed, RandomState, or Generator."
            ) from err

        if random_state is None:
            self._random_state = generator
        return generator


class RecycledOperations(ShapeParameters):
    """
    Elementwise evaluation under the recycling contract.

    Subclasses keep scipy's kernel names (``_argcheck``, ``_pdf``/``_pmf``,
    ``_cdf``, ``_sf``, ``_ppf``, ``_rvs``) but the kernels receive recycled
    1-D arrays holding only valid, non-missing elements. The public methods
    handle parameter parsing, recycling, missing propagation,
    invalid-parameter sentinels and the aggregate warning; scipy's ``pdf``,
    ``cdf``, ``ppf``, ``rvs`` and friends are routed through them.
    """

    def _recycled(self, first, first_name, args, kwargs, caller):
        values = self._parse_shapes(args, kwargs, caller)
        arrays = [as_float_array(first, first_name)]
        arrays += [as_float_array(v, name) for v, name in zip(values, self._shape_names())]
        arrays = recycle(*arrays)
        return arrays[0], arrays[1:]

    def _masks(self, first, params, extra_valid=None):
        """Split elements into missing, invalid and ready-to-evaluate."""
        missing = any_missing(first, *params)
        invalid = np.zeros(first.shape[0], dtype=bool)
        present = ~missing
        if np.any(present):
            checked = np.asarray(self._argcheck(*[p[present] for p in params]), dtype=bool)
            invalid[present] = ~np.broadcast_to(checked, (int(present.sum()),))
        if extra_valid is not None:
            invalid |= present & ~extra_valid
        return missing, invalid, present & ~invalid

    def _density_kernel(self, x, params, log):
        raise NotImplementedError

    def density(self, x, *args, log: bool = False, **kwargs) -> np.ndarray:
        """
        Probability density (or mass) function.

        Parameters
        ----------
        x : array_like
            Points at which to evaluate the density.
        *args, **kwargs
            Shape parameters, positionally or by name.
        log : bool
            Return the log-density.

        Returns
        -------
        values : np.ndarray
            Recycled to the longest input.
        """
        x, params = self._recycled(x, "x", args, kwargs, "density")
        out = np.full(x.shape[0], np.nan)
        _, invalid, ok = self._masks(x, params)
        if np.any(ok):
            out[ok] = self._density_kernel(x[ok], [p[ok] for p in params], log)
        warn_nans(invalid)
        return out

    def cumulative(self, x, *args, lower_tail: bool = True, log: bool = False, **kwargs) -> np.ndarray:
        """
        Cumulative distribution function.

        ``lower_tail=False`` returns ``P(X > x)``; ``log=True`` returns the
        logarithm of whichever tail was requested.
        """
        x, params = self._recycled(x, "x", args, kwargs, "cumulative")
        out = np.full(x.shape[0], np.nan)
        _, invalid, ok = self._masks(x, params)
        if np.any(ok):
            xs = x[ok]
            ps = [p[ok] for p in params]
            if lower_tail:
                out[ok] = self._logcdf(xs, *ps) if log else self._cdf(xs, *ps)
            else:
                out[ok] = self._logsf(xs, *ps) if log else self._sf(xs, *ps)
        warn_nans(invalid)
        return out

    def quantile(self, q, *args, lower_tail: bool = True, log: bool = False, **kwargs) -> np.ndarray:
        """
        Quantile function (inverse of the cumulative distribution function).

        ``log=True`` means ``q`` holds log-probabilities; ``lower_tail=False``
        means ``q`` holds upper-tail probabilities.
        """
        q, params = self._recycled(q, "q", args, kwargs, "quantile")
        q = prepare_probabilities(q, lower_tail=lower_tail, log=log)
        out = np.full(q.shape[0], np.nan)
        _, invalid, ok = self._masks(q, params, extra_valid=valid_probability(q))
        if np.any(ok):
            out[ok] = self._ppf(q[ok], *[p[ok] for p in params])
        warn_nans(invalid)
        return out

    def sample(self, n, *args, random_state=None, **kwargs) -> np.ndarray:
        """
        Draw ``n`` random variates.

        Parameters are recycled to ``n``; draws are taken in output order.
        Elements with missing or invalid parameters are ``NaN`` and trigger a
        single ``NAsProducedWarning``.
        """
        count = sample_size(n)
        values = self._parse_shapes(args, kwargs, "sample")
        names = self._shape_names()
        arrays = [as_float_array(v, name) for v, name in zip(values, names)]
        for arr, name in zip(arrays, names):
            if arr.shape[0] == 0 and count > 0:
                raise ValueError(f"{self._dist_name('sample')}: `{name}` is empty.")
        out = np.full(count, np.nan)
        if count == 0:
            return out
        idx = np.arange(count)
        params = [arr[idx % arr.shape[0]] for arr in arrays]
        missing, invalid, ok = self._masks(np.zeros(count), params)
        rng = self._init_rng(random_state)
        if np.any(ok):
            out[ok] = self._rvs(*[p[ok] for p in params], size=int(ok.sum()), random_state=rng)
        warn_nas(missing | invalid)
        return out

    # ------------------------------------------------------------------
    # scipy entry points
    # ------------------------------------------------------------------
    def cdf(self, x, *args, **kwargs):
        return self.cumulative(x, *args, **kwargs)

    def logcdf(self, x, *args, **kwargs):
        return self.cumulative(x, *args, log=True, **kwargs)

    def sf(self, x, *args, **kwargs):
        return self.cumulative(x, *args, lower_tail=False, **kwargs)

    def logsf(self, x, *args, **kwargs):
        return self.cumulative(x, *args, lower_tail=False, log=True, **kwargs)

    def ppf(self, q, *args, **kwargs):
        return self.quantile(q, *args, **kwargs)

    def isf(self, q, *args, **kwargs):
        return self.quantile(q, *args, lower_tail=False, **kwargs)

    def rvs(self, *args, size=None, random_state=None, **kwargs):
        return self.sample(1 if size is None else size, *args, random_state=random_state, **kwargs)


class ExtraContinuous(RecycledOperations, rv_continuous):
    """Base class for continuous distributions evaluated under recycling."""

    def _density_kernel(self, x, params, log):
        return self._logpdf(x, *params) if log else self._pdf(x, *params)

    def pdf(self, x, *args, **kwargs):
        return self.density(x, *args, **kwargs)

    def logpdf(self, x, *args, **kwargs):
        return self.density(x, *args, log=True, **kwargs)

    def freeze(self, *args, **kwds) -> "ExtraContinuousFrozen":
        """Return a distribution with its shape parameters fixed."""
        values = self._parse_shapes(args, kwds, "freeze")
        return ExtraContinuousFrozen(self, *values)

    __call__ = freeze


class ExtraDiscrete(RecycledOperations, rv_discrete):
    """Base class for discrete distributions evaluated under recycling."""

    def _density_kernel(self, x, params, log):
        return self._logpmf(x, *params) if log else self._pmf(x, *params)

    def pmf(self, k, *args, **kwargs):
        return self.density(k, *args, **kwargs)

    def logpmf(self, k, *args, **kwargs):
        return self.density(k, *args, log=True, **kwargs)

    def freeze(self, *args, **kwds) -> "ExtraDiscreteFrozen":
        """Return a distribution with its shape parameters fixed."""
        values = self._parse_shapes(args, kwds, "freeze")
        return ExtraDiscreteFrozen(self, *values)

    __call__ = freeze


class FrozenOperations:
    """The recycled operations of a frozen distribution."""

    def _call_dist_method(self, name, first, **kwargs):
        call_kwargs = dict(self.kwds)
        call_kwargs.update(kwargs)
        return getattr(self.dist, name)(first, *self.args, **call_kwargs)

    def density(self, x, log: bool = False):
        return self._call_dist_method("density", x, log=log)

    def cumulative(self, x, lower_tail: bool = True, log: bool = False):
        return self._call_dist_method("cumulative", x, lower_tail=lower_tail, log=log)

    def quantile(self, q, lower_tail: bool = True, log: bool = False):
        return self._call_dist_method("quantile", q, lower_tail=lower_tail, log=log)

    def sample(self, n, random_state=None):
        return self._call_dist_method("sample", n, random_state=random_state)


class ExtraContinuousFrozen(FrozenOperations, rv_continuous_frozen):
    """Frozen continuous distribution."""


class ExtraDiscreteFrozen(FrozenOperations, rv_discrete_frozen):
    """Frozen discrete distribution."""
