import warnings

import numpy as np
from scipy.special import gammaln, xlogy
from scipy.stats import binom, nbinom
from scipy.stats._multivariate import multi_rv_frozen, multi_rv_generic

from .base import (
    DimensionMismatchError,
    ExtraDiscrete,
    ImproperValueWarning,
    ShapeParameters,
    prepare_probabilities,
    sample_size,
    warn_nans,
    warn_nas,
)
from .utils import (
    as_float_array,
    as_prob_matrix,
    check_interrupt,
    is_integer,
    lfactorial,
    normalize_prob,
    poll_interrupt,
    recycle_rows,
    valid_nonnegative,
    valid_positive,
    valid_probability,
)

__all__ = [
    "bernoulli",
    "categorical",
    "gpois",
    "multinomial",
    "zib",
]

_GPOIS_TABLE_CHUNK = 1000


######################
## Binary Outcomes  ##
######################


class bernoulli_gen(ExtraDiscrete):
    """Bernoulli Distribution

    Methods
    -------
    density(x, prob)
        Probability mass function; values other than 0 and 1 get mass 0 and
        an ``ImproperValueWarning`` each.
    cumulative(x, prob)
        Cumulative distribution function.
    quantile(q, prob)
        Quantile function.
    sample(n, prob, random_state=None)
        Random variates.
    """

    _shape_defaults = {"prob": 0.5}

    def _argcheck(self, prob):
        return (prob >= 0) & (prob <= 1)

    def _pmf(self, x, prob):
        out = np.zeros(x.shape)
        one = x == 1.0
        zero = x == 0.0
        out[one] = prob[one]
        out[zero] = 1.0 - prob[zero]
        for value in x[~(one | zero)]:
            warnings.warn(f"improper x = {value:f}", ImproperValueWarning, stacklevel=4)
        return out

    def _cdf(self, x, prob):
        return np.where(x < 0.0, 0.0, np.where(x < 1.0, 1.0 - prob, 1.0))

    def _sf(self, x, prob):
        return np.where(x < 0.0, 1.0, np.where(x < 1.0, prob, 0.0))

    def _ppf(self, q, prob):
        return np.where(q <= 1.0 - prob, 0.0, 1.0)

    def _rvs(self, prob, size=None, random_state=None):
        u = random_state.uniform(size=size)
        return np.where(u > prob, 0.0, 1.0)


bernoulli = bernoulli_gen(b=1, name="bernoulli")


class zib_gen(ExtraDiscrete):
    r"""Zero-Inflated Binomial Distribution

    A binomial law with extra probability mass ``pi`` at zero:

    $$
    f(x) = \begin{cases}
        \pi + (1 - \pi)(1 - p)^n & x = 0 \\
        (1 - \pi) \binom{n}{x} p^x (1 - p)^{n - x} & x > 0
    \end{cases}
    $$

    where $n$ is the number of ``trials`` (also accepted as ``size=``).
    Cumulative, quantile and sampling compose the inflation with
    ``scipy.stats.binom`` and ``Generator.binomial``.

    Methods
    -------
    density(x, trials, prob, pi)
    cumulative(x, trials, prob, pi)
    quantile(q, trials, prob, pi)
    sample(n, trials, prob, pi, random_state=None)
    """

    _shape_aliases = {"size": "trials"}

    def _argcheck(self, trials, prob, pi):
        return (
            valid_nonnegative(trials)
            & is_integer(trials)
            & valid_probability(prob)
            & valid_probability(pi)
        )

    def _pmf(self, x, trials, prob, pi):
        out = np.zeros(x.shape)
        zero = x == 0.0
        positive = is_integer(x) & (x > 0.0)
        out[zero] = pi[zero] + (1.0 - pi[zero]) * np.power(1.0 - prob[zero], trials[zero])
        out[positive] = (1.0 - pi[positive]) * binom.pmf(x[positive], trials[positive], prob[positive])
        return out

    def _cdf(self, x, trials, prob, pi):
        out = np.where(x < 0.0, 0.0, 1.0)
        inside = (x >= 0.0) & np.isfinite(x)
        out[inside] = pi[inside] + (1.0 - pi[inside]) * binom.cdf(x[inside], trials[inside], prob[inside])
        return out

    def _sf(self, x, trials, prob, pi):
        out = np.where(x < 0.0, 1.0, 0.0)
        inside = (x >= 0.0) & np.isfinite(x)
        out[inside] = (1.0 - pi[inside]) * binom.sf(x[inside], trials[inside], prob[inside])
        return out

    def _ppf(self, q, trials, prob, pi):
        out = np.zeros(q.shape)
        binomial = (q >= pi) & (pi < 1.0)
        qb = (q[binomial] - pi[binomial]) / (1.0 - pi[binomial])
        out[binomial] = np.maximum(binom.ppf(qb, trials[binomial], prob[binomial]), 0.0)
        return out

    def _rvs(self, trials, prob, pi, size=None, random_state=None):
        u = random_state.uniform(size=size)
        out = np.zeros(size)
        draw = u >= pi
        out[draw] = random_state.binomial(trials[draw].astype(np.int64), prob[draw])
        return out


zib = zib_gen(name="zib")


######################
## Count Mixtures   ##
######################


def _gpois_cdf_table(max_x, alpha, beta):
    """
    Cumulative gamma-Poisson probabilities for ``x = 0, ..., max_x``.

    The mass is built upward with the ratio recurrence

    $$
    \\log f(x) = \\log f(x - 1) + \\log(x + \\alpha - 1) - \\log x + \\log p
    $$

    in chunks, so the log-gamma function is never re-evaluated per point and
    the interrupt handler is polled between chunks.
    """
    m = int(max_x)
    table = np.empty(m + 1)
    log_p = np.log(beta) - np.log1p(beta)
    log_q_alpha = -alpha * np.log1p(beta)
    rising = 0.0
    log_fact = 0.0
    total = 0.0
    for start in range(0, m + 1, _GPOIS_TABLE_CHUNK):
        poll_interrupt(" while building the gamma-Poisson table")
        j = np.arange(start, min(start + _GPOIS_TABLE_CHUNK, m + 1), dtype=float)
        step = np.maximum(j, 1.0)
        rise = rising + np.cumsum(np.where(j > 0, np.log(step + alpha - 1.0), 0.0))
        fact = log_fact + np.cumsum(np.where(j > 0, np.log(step), 0.0))
        cum = total + np.cumsum(np.exp(rise - fact + j * log_p + log_q_alpha))
        table[start : start + j.size] = cum
        rising, log_fact, total = rise[-1], fact[-1], cum[-1]
    return np.minimum(table, 1.0)


class gpois_gen(ExtraDiscrete):
    r"""Gamma-Poisson Distribution

    Poisson law whose rate is gamma distributed with shape ``alpha`` and
    scale ``beta``; a negative binomial with $p = \beta / (1 + \beta)$:

    $$
    f(x) = \frac{\Gamma(\alpha + x)}{x!\,\Gamma(\alpha)}
           p^x (1 - p)^\alpha
    $$

    Methods
    -------
    density(x, alpha, beta)
        Probability mass function.
    cumulative(x, alpha, beta)
        Cumulative distribution function read from a table built once per
        distinct ``(alpha, beta)`` pair in the call. The upper tail comes
        from ``scipy.stats.nbinom`` so that it keeps its precision far out.
    quantile(q, alpha, beta)
        Smallest ``x`` with ``F(x) >= q``, from ``scipy.stats.nbinom``.
    sample(n, alpha, beta, random_state=None)
        Compound draws: ``Poisson(Gamma(alpha, beta))``.
    """

    def _argcheck(self, alpha, beta):
        return valid_positive(alpha) & valid_positive(beta)

    @staticmethod
    def _nbinom_prob(beta):
        return 1.0 / (1.0 + beta)

    def _logpmf(self, x, alpha, beta):
        out = np.full(x.shape, -np.inf)
        support = is_integer(x) & (x >= 0.0)
        xs, a, b = x[support], alpha[support], beta[support]
        out[support] = (
            gammaln(a + xs)
            - (lfactorial(xs) + gammaln(a))
            + xs * (np.log(b) - np.log1p(b))
            - a * np.log1p(b)
        )
        return out

    def _pmf(self, x, alpha, beta):
        return np.exp(self._logpmf(x, alpha, beta))

    def _cdf(self, x, alpha, beta):
        out = np.where(x < 0.0, 0.0, 1.0)
        lookup = (x >= 0.0) & np.isfinite(x)
        if not np.any(lookup):
            return out
        max_x = np.floor(np.max(x[lookup]))
        tables = {}
        for count, i in enumerate(np.flatnonzero(lookup)):
            check_interrupt(count)
            key = (alpha[i], beta[i])
            table = tables.get(key)
            if table is None:
                table = tables[key] = _gpois_cdf_table(max_x, alpha[i], beta[i])
            out[i] = table[int(x[i])]
        return out

    def _sf(self, x, alpha, beta):
        return nbinom.sf(x, alpha, self._nbinom_prob(beta))

    def _logsf(self, x, alpha, beta):
        return nbinom.logsf(x, alpha, self._nbinom_prob(beta))

    def _ppf(self, q, alpha, beta):
        return np.maximum(nbinom.ppf(q, alpha, self._nbinom_prob(beta)), 0.0)

    def _rvs(self, alpha, beta, size=None, random_state=None):
        lam = random_state.gamma(alpha, beta)
        return random_state.poisson(lam).astype(float)


gpois = gpois_gen(name="gpois")


######################
## Categorical Data ##
######################


def _descending_scan(target, prob):
    """
    Invert a categorical CDF by walking the categories from the last one.

    ``p_tmp`` starts at 1 and loses ``prob[:, j]`` for ``j = k-1, ..., 0``;
    the first ``j`` with ``target > p_tmp`` gives category ``j + 1`` (1 if
    none does).
    """
    n, k = prob.shape
    result = np.zeros(n)
    found = np.zeros(n, dtype=bool)
    p_tmp = np.ones(n)
    for j in range(k - 1, -1, -1):
        p_tmp = np.where(found, p_tmp, p_tmp - prob[:, j])
        hit = ~found & (target > p_tmp)
        result[hit] = j
        found |= hit
    return result + 1.0


class categorical_gen(ExtraDiscrete):
    """Categorical Distribution

    Outcomes are ``1, ..., k``; each row of ``prob`` is one distribution and
    is normalized by its total. Rows are recycled like any other parameter.

    Methods
    -------
    density(x, prob)
        Probability mass function.
    cumulative(x, prob)
        Cumulative distribution function (explicit prefix sums).
    quantile(q, prob)
        Quantile function (descending scan over categories).
    sample(n, prob, random_state=None)
        Random variates (the same scan applied to uniforms).
    """

    def _prepare(self, first, first_name, args, kwargs, caller):
        (prob,) = self._parse_shapes(args, kwargs, caller)
        values = as_float_array(first, first_name)
        prob = as_prob_matrix(prob)
        normalized, row_missing, row_invalid = normalize_prob(prob)
        if values.shape[0] == 0 or prob.shape[0] == 0:
            n = 0
        else:
            n = max(values.shape[0], prob.shape[0])
        values = values[np.arange(n) % values.shape[0]] if n else values[:0]
        rows = np.arange(n) % prob.shape[0] if n else np.zeros(0, dtype=int)
        return values, recycle_rows(normalized, n), row_missing[rows], row_invalid[rows]

    def density(self, x, *args, log=False, **kwargs):
        x, prob, row_missing, row_invalid = self._prepare(x, "x", args, kwargs, "density")
        k = prob.shape[1]
        out = np.full(x.shape[0], np.nan)
        present = ~np.isnan(x) & ~row_missing
        ok = present & ~row_invalid
        out[ok] = 0.0
        hit = ok & is_integer(x) & (x >= 1.0) & (x <= k)
        out[hit] = prob[hit, x[hit].astype(int) - 1]
        if log:
            with np.errstate(divide="ignore"):
                out = np.log(out)
        warn_nans(present & row_invalid)
        return out

    def cumulative(self, x, *args, lower_tail=True, log=False, **kwargs):
        x, prob, row_missing, row_invalid = self._prepare(x, "x", args, kwargs, "cumulative")
        k = prob.shape[1]
        out = np.full(x.shape[0], np.nan)
        present = ~np.isnan(x) & ~row_missing
        ok = present & ~row_invalid
        out[ok & (x < 1.0)] = 0.0
        out[ok & (x > k)] = 1.0
        inside = ok & (x >= 1.0) & (x <= k)
        acc = np.zeros(x.shape[0])
        upto = np.floor(np.where(inside, x, 0.0))
        for j in range(k):
            take = inside & (j < upto)
            acc[take] += prob[take, j]
        out[inside] = acc[inside]
        if not lower_tail:
            out = 1.0 - out
        if log:
            with np.errstate(divide="ignore"):
                out = np.log(out)
        warn_nans(present & row_invalid)
        return out

    def quantile(self, q, *args, lower_tail=True, log=False, **kwargs):
        q, prob, row_missing, row_invalid = self._prepare(q, "q", args, kwargs, "quantile")
        q = prepare_probabilities(q, lower_tail=lower_tail, log=log)
        out = np.full(q.shape[0], np.nan)
        present = ~np.isnan(q) & ~row_missing
        invalid = present & (row_invalid | ~valid_probability(q))
        ok = present & ~invalid
        out[ok & (q == 0.0)] = 1.0
        scan = ok & (q > 0.0)
        if np.any(scan):
            out[scan] = _descending_scan(q[scan], prob[scan])
        warn_nans(invalid)
        return out

    def sample(self, n, *args, random_state=None, **kwargs):
        count = sample_size(n)
        (prob,) = self._parse_shapes(args, kwargs, "sample")
        prob = as_prob_matrix(prob)
        out = np.full(count, np.nan)
        if count == 0:
            return out
        if prob.shape[0] == 0:
            raise ValueError(f"{self._dist_name('sample')}: `prob` is empty.")
        normalized, row_missing, row_invalid = normalize_prob(prob)
        rows = np.arange(count) % prob.shape[0]
        bad = row_missing[rows] | row_invalid[rows]
        ok = ~bad
        rng = self._init_rng(random_state)
        if np.any(ok):
            u = rng.uniform(size=int(ok.sum()))
            out[ok] = _descending_scan(u, normalized[rows[ok]])
        warn_nas(bad)
        return out


categorical = categorical_gen(a=1, shapes="prob", name="categorical")


class multinomial_gen(ShapeParameters, multi_rv_generic):
    r"""Multinomial Distribution

    Each row of ``x`` holds category counts, ``trials`` (also accepted as
    ``size=``) the number of trials and each row of ``prob`` the
    (non-normalized) category probabilities.

    $$
    f(x) = \frac{n!}{\prod_i x_i!} \prod_i p_i^{x_i}
    $$

    Only the mass function and the sampler exist; a multivariate count law
    has no cumulative or quantile function here.

    Methods
    -------
    density(x, trials, prob)
        Probability mass function, one value per recycled row.
    sample(n, trials, prob, random_state=None)
        ``n x k`` matrix of counts from sequential conditional binomials.
    """

    name = "multinomial"
    shapes = "trials, prob"
    _shape_aliases = {"size": "trials"}

    def __call__(self, *args, seed=None, **kwargs):
        return self.freeze(*args, seed=seed, **kwargs)

    def freeze(self, *args, seed=None, **kwargs) -> "multinomial_frozen":
        """Return a multinomial distribution with ``trials`` and ``prob`` fixed."""
        trials, prob = self._parse_shapes(args, kwargs, "freeze")
        return multinomial_frozen(trials, prob, seed=seed)

    def density(self, x, *args, log=False, **kwargs):
        """
        Probability mass function of the multinomial distribution.

        Rows whose counts are negative, fractional or do not add up to
        ``trials`` have mass 0. A negative probability or a ``trials`` that
        is not a non-negative integer makes the row invalid (``NaN``).

        Raises
        ------
        DimensionMismatchError
            If ``x`` and ``prob`` have different numbers of columns.
        """
        trials, prob = self._parse_shapes(args, kwargs, "density")
        x = as_prob_matrix(x, "x")
        trials = as_float_array(trials, "trials")
        prob = as_prob_matrix(prob)
        if x.shape[1] != prob.shape[1]:
            raise DimensionMismatchError(
                "Number of columns in `x` does not equal number of columns in `prob`."
            )
        lengths = (x.shape[0], trials.shape[0], prob.shape[0])
        if min(lengths) == 0:
            return np.zeros(0)
        n = max(lengths)
        idx = np.arange(n)
        x = recycle_rows(x, n)
        trials = trials[idx % trials.shape[0]]
        normalized, prob_missing, prob_invalid = normalize_prob(prob)
        rows = idx % prob.shape[0]
        prob = normalized[rows]

        missing = np.isnan(x).any(axis=1) | prob_missing[rows] | np.isnan(trials)
        invalid = ~missing & (prob_invalid[rows] | ~is_integer(trials) | (trials < 0.0))
        ok = ~missing & ~invalid

        out = np.full(n, np.nan)
        if np.any(ok):
            xs, ts, ps = x[ok], trials[ok], prob[ok]
            wrong_x = ((xs < 0.0) | ~is_integer(xs)).any(axis=1)
            xs = np.where(wrong_x[:, None], 0.0, xs)
            logp = lfactorial(ts) - lfactorial(xs).sum(axis=1) + xlogy(xs, ps).sum(axis=1)
            out[ok] = np.where(wrong_x | (xs.sum(axis=1) != ts), -np.inf, logp)
        if not log:
            out = np.exp(out)
        warn_nans(invalid)
        return out

    def sample(self, n, *args, random_state=None, **kwargs):
        """
        Draw ``n`` count vectors.

        Category ``j < k-1`` receives ``Binomial(trials_left, p_j / mass_left)``;
        the last category takes what is left. Rows with missing or invalid
        parameters are all ``NaN``.

        Returns
        -------
        counts : np.ndarray (n, k)
        """
        count = sample_size(n)
        trials, prob = self._parse_shapes(args, kwargs, "sample")
        trials = as_float_array(trials, "trials")
        prob = as_prob_matrix(prob)
        k = prob.shape[1]
        out = np.full((count, k), np.nan)
        if count == 0:
            return out
        if trials.shape[0] == 0 or prob.shape[0] == 0:
            raise ValueError(f"{self._dist_name('sample')}: `trials` and `prob` must not be empty.")

        normalized, prob_missing, prob_invalid = normalize_prob(prob)
        idx = np.arange(count)
        draws = trials[idx % trials.shape[0]]
        rows = idx % prob.shape[0]
        bad = prob_missing[rows] | prob_invalid[rows] | ~is_integer(draws) | (draws < 0.0)

        rng = self._init_rng(random_state)
        for done, i in enumerate(np.flatnonzero(~bad)):
            check_interrupt(done)
            p = normalized[rows[i]]
            trials_left = int(draws[i])
            mass_left = 1.0
            for j in range(k - 1):
                p_j = min(max(p[j] / mass_left, 0.0), 1.0) if mass_left > 0.0 else 0.0
                draw = rng.binomial(trials_left, p_j)
                out[i, j] = draw
                trials_left -= draw
                mass_left -= p[j]
            out[i, k - 1] = trials_left
        warn_nas(bad)
        return out

    def pmf(self, x, *args, **kwargs):
        return self.density(x, *args, **kwargs)

    def logpmf(self, x, *args, **kwargs):
        return self.density(x, *args, log=True, **kwargs)

    def rvs(self, *args, size=1, random_state=None, **kwargs):
        return self.sample(size, *args, random_state=random_state, **kwargs)


multinomial = multinomial_gen()


class multinomial_frozen(multi_rv_frozen):
    """Multinomial distribution with ``trials`` and ``prob`` fixed."""

    def __init__(self, trials, prob, seed=None):
        self._dist = multinomial_gen(seed)
        self.trials = trials
        self.prob = prob

    def density(self, x, log=False):
        return self._dist.density(x, self.trials, self.prob, log=log)

    def sample(self, n, random_state=None):
        return self._dist.sample(n, self.trials, self.prob, random_state=random_state)

    def pmf(self, x):
        return self.density(x)

    def logpmf(self, x):
        return self.density(x, log=True)

    def rvs(self, size=1, random_state=None):
        return self.sample(size, random_state=random_state)
