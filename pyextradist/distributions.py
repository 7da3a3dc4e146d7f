import numpy as np
from scipy.special import tklmbda, xlog1py, xlogy
from scipy.stats import beta as beta_dist

from .base import ExtraContinuous
from .utils import SQRT_2PI, norm_cdf, norm_pdf, norm_ppf

__all__ = [
    "laplace",
    "rayleigh",
    "power",
    "huber",
    "kumaraswamy",
    "proportion",
    "tukeylambda",
]


def _masked(out, mask, func, *arrays):
    """Evaluate ``func`` on the ``mask`` subset of ``arrays`` and store it in ``out``."""
    if np.any(mask):
        out[mask] = func(*[a[mask] for a in arrays])
    return out


#########################
## Symmetric Laws      ##
#########################


class laplace_gen(ExtraContinuous):
    r"""Laplace (double exponential) Distribution

    Methods
    -------
    density(x, mu, sigma)
        Probability density function.
    cumulative(x, mu, sigma)
        Cumulative distribution function.
    quantile(q, mu, sigma)
        Quantile function (inverse of CDF).
    sample(n, mu, sigma, random_state=None)
        Random variates.

    Notes
    -----
    With $z = (x - \mu)/\sigma$,

    $$
    f(x) = \frac{1}{2\sigma} e^{-|z|}, \qquad
    F(x) = \begin{cases} \frac{1}{2} e^{z} & x < \mu \\ 1 - \frac{1}{2} e^{-z} & x \geq \mu \end{cases}
    $$

    Both tails of the CDF are evaluated on the branch that avoids cancellation.
    """

    _shape_defaults = {"mu": 0.0, "sigma": 1.0}

    def _argcheck(self, mu, sigma):
        return sigma > 0

    def _pdf(self, x, mu, sigma):
        return np.exp(-np.abs(x - mu) / sigma) / (2.0 * sigma)

    def _logpdf(self, x, mu, sigma):
        return -np.abs(x - mu) / sigma - np.log(2.0 * sigma)

    def _cdf(self, x, mu, sigma):
        z = (x - mu) / sigma
        with np.errstate(over="ignore"):
            return np.where(x < mu, 0.5 * np.exp(z), 1.0 - 0.5 * np.exp(-z))

    def _sf(self, x, mu, sigma):
        z = (x - mu) / sigma
        with np.errstate(over="ignore"):
            return np.where(x < mu, 1.0 - 0.5 * np.exp(z), 0.5 * np.exp(-z))

    def _logcdf(self, x, mu, sigma):
        z = (x - mu) / sigma
        with np.errstate(over="ignore", invalid="ignore"):
            return np.where(x < mu, z - np.log(2.0), np.log1p(-0.5 * np.exp(-z)))

    def _logsf(self, x, mu, sigma):
        z = (x - mu) / sigma
        with np.errstate(over="ignore", invalid="ignore"):
            return np.where(x < mu, np.log1p(-0.5 * np.exp(z)), -z - np.log(2.0))

    def _ppf(self, q, mu, sigma):
        with np.errstate(divide="ignore"):
            return np.where(
                q < 0.5,
                mu + sigma * np.log(2.0 * q),
                mu - sigma * np.log(2.0 * (1.0 - q)),
            )

    def _rvs(self, mu, sigma, size=None, random_state=None):
        u = random_state.uniform(-0.5, 0.5, size=size)
        with np.errstate(divide="ignore"):
            return mu + sigma * np.sign(u) * np.log(1.0 - 2.0 * np.abs(u))

    def density(self, x, *args, log=False, **kwargs):
        r"""
        Probability density function of the Laplace distribution.

        $$
        f(x) = \frac{1}{2\sigma} \exp\left(-\frac{|x - \mu|}{\sigma}\right)
        $$

        Parameters
        ----------
        x : array_like
            Points at which to evaluate the density.
        mu : array_like
            Location, default 0.
        sigma : array_like
            Scale, sigma > 0, default 1.
        log : bool
            Return the log-density.

        Returns
        -------
        pdf_values : np.ndarray
            Density evaluated at `x`, recycled to the longest input.
        """
        return super().density(x, *args, log=log, **kwargs)


laplace = laplace_gen(name="laplace")


class huber_gen(ExtraContinuous):
    r"""Huber Density Distribution

    The density is proportional to $e^{-\rho(z)}$ where $\rho$ is Huber's loss,
    quadratic for $|z| \leq \epsilon$ and linear beyond. It behaves like a
    normal law in the centre and like a Laplace law in the tails.

    Methods
    -------
    density(x, mu, sigma, epsilon)
        Probability density function.
    cumulative(x, mu, sigma, epsilon)
        Cumulative distribution function.
    quantile(q, mu, sigma, epsilon)
        Quantile function (inverse of CDF).
    sample(n, mu, sigma, epsilon, random_state=None)
        Random variates via inverse transform.

    Notes
    -----
    The normalizing constant is

    $$
    A = 2\sqrt{2\pi}\left(\Phi(\epsilon) + \frac{\phi(\epsilon)}{\epsilon} - \frac{1}{2}\right)
    $$

    References
    ----------
    - Huber, P.J. (1964). Robust Estimation of a Location Parameter.
      Annals of Mathematical Statistics, 35(1), 73-101.
    - Schumann, D. (2009). Robust Variable Selection. ProQuest.
    """

    _shape_defaults = {"mu": 0.0, "sigma": 1.0, "epsilon": 1.345}

    def _argcheck(self, mu, sigma, epsilon):
        return (sigma > 0) & (epsilon > 0)

    @staticmethod
    def _norm_const(c):
        return 2.0 * SQRT_2PI * (norm_cdf(c) + norm_pdf(c) / c - 0.5)

    def _rho(self, x, mu, sigma, c):
        z = np.abs((x - mu) / sigma)
        return np.where(z <= c, 0.5 * np.square(z), c * z - 0.5 * np.square(c))

    def _pdf(self, x, mu, sigma, epsilon):
        return np.exp(-self._rho(x, mu, sigma, epsilon)) / self._norm_const(epsilon) / sigma

    def _logpdf(self, x, mu, sigma, epsilon):
        return -self._rho(x, mu, sigma, epsilon) - np.log(self._norm_const(epsilon)) - np.log(sigma)

    def _lower_mass(self, x, mu, sigma, c):
        """Mass below ``-|z|`` together with the signed standardized value."""
        A = self._norm_const(c)
        z = (x - mu) / sigma
        az = -np.abs(z)
        with np.errstate(over="ignore"):
            tail = np.exp(0.5 * np.square(c) + c * az) / (c * A)
        body = (norm_pdf(c) / c + norm_cdf(az) - norm_cdf(-c)) * SQRT_2PI / A
        return np.where(az <= -c, tail, body), z

    def _cdf(self, x, mu, sigma, epsilon):
        p, z = self._lower_mass(x, mu, sigma, epsilon)
        return np.where(z <= 0.0, p, 1.0 - p)

    def _sf(self, x, mu, sigma, epsilon):
        p, z = self._lower_mass(x, mu, sigma, epsilon)
        return np.where(z <= 0.0, 1.0 - p, p)

    def _ppf(self, q, mu, sigma, epsilon):
        c = epsilon
        A = self._norm_const(c)
        pm = np.minimum(q, 1.0 - q)
        in_tail = pm <= SQRT_2PI * norm_pdf(c) / (c * A)
        with np.errstate(divide="ignore"):
            tail = np.log(c * pm * A) / c - 0.5 * c
        body = norm_ppf(np.abs(1.0 - norm_cdf(c) + pm * A / SQRT_2PI - norm_pdf(c) / c))
        z = np.where(in_tail, tail, body)
        return np.where(q < 0.5, mu + z * sigma, mu - z * sigma)

    def quantile(self, q, *args, lower_tail=True, log=False, **kwargs):
        r"""
        Quantile function of the Huber density.

        The target probability is folded to $p_m = \min(p, 1 - p)$. Below the
        tail mass $\sqrt{2\pi}\,\phi(\epsilon) / (\epsilon A)$ the linear tail
        is inverted in closed form,

        $$
        z = \frac{\log(\epsilon p_m A)}{\epsilon} - \frac{\epsilon}{2},
        $$

        otherwise the quadratic centre is inverted through $\Phi^{-1}$.

        Parameters
        ----------
        q : array_like
            Probabilities.
        mu, sigma, epsilon : array_like
            Location, scale (> 0) and threshold (> 0).
        lower_tail : bool
            If False, `q` are upper-tail probabilities.
        log : bool
            If True, `q` are log-probabilities.

        Returns
        -------
        ppf_values : np.ndarray
        """
        return super().quantile(q, *args, lower_tail=lower_tail, log=log, **kwargs)


huber = huber_gen(name="huber")


#########################
## Positive Support    ##
#########################


class rayleigh_gen(ExtraContinuous):
    r"""Rayleigh Distribution

    Methods
    -------
    density(x, sigma)
        Probability density function.
    cumulative(x, sigma)
        Cumulative distribution function.
    quantile(q, sigma)
        Quantile function (inverse of CDF).
    sample(n, sigma, random_state=None)
        Random variates.

    Notes
    -----
    $$
    f(x) = \frac{x}{\sigma^2} e^{-x^2 / 2\sigma^2}, \qquad
    F(x) = 1 - e^{-x^2 / 2\sigma^2}, \qquad
    F^{-1}(p) = \sigma\sqrt{-2\log(1 - p)}
    $$
    """

    _shape_defaults = {"sigma": 1.0}

    def _argcheck(self, sigma):
        return sigma > 0

    def _pdf(self, x, sigma):
        out = np.zeros(x.shape)
        inside = (x >= 0.0) & np.isfinite(x)
        return _masked(
            out,
            inside,
            lambda x, s: x / np.square(s) * np.exp(-np.square(x) / (2.0 * np.square(s))),
            x,
            sigma,
        )

    def _logpdf(self, x, sigma):
        out = np.full(x.shape, -np.inf)
        inside = (x >= 0.0) & np.isfinite(x)
        with np.errstate(divide="ignore"):
            return _masked(
                out,
                inside,
                lambda x, s: np.log(x) - 2.0 * np.log(s) - np.square(x) / (2.0 * np.square(s)),
                x,
                sigma,
            )

    def _cdf(self, x, sigma):
        xs = np.maximum(x, 0.0)
        return np.where(x < 0.0, 0.0, -np.expm1(-np.square(xs) / (2.0 * np.square(sigma))))

    def _sf(self, x, sigma):
        xs = np.maximum(x, 0.0)
        return np.where(x < 0.0, 1.0, np.exp(-np.square(xs) / (2.0 * np.square(sigma))))

    def _logsf(self, x, sigma):
        xs = np.maximum(x, 0.0)
        return np.where(x < 0.0, 0.0, -np.square(xs) / (2.0 * np.square(sigma)))

    def _ppf(self, q, sigma):
        with np.errstate(divide="ignore"):
            return sigma * np.sqrt(-2.0 * np.log1p(-q))

    def _rvs(self, sigma, size=None, random_state=None):
        u = random_state.uniform(size=size)
        with np.errstate(divide="ignore"):
            return sigma * np.sqrt(-2.0 * np.log(u))


rayleigh = rayleigh_gen(a=0.0, name="rayleigh")


class power_gen(ExtraContinuous):
    r"""Power Distribution

    Support $(0, \alpha)$ with $F(x) = (x/\alpha)^\beta$. Density and CDF are
    evaluated on the log scale and exponentiated.

    Methods
    -------
    density(x, alpha, beta)
        Probability density function.
    cumulative(x, alpha, beta)
        Cumulative distribution function.
    quantile(q, alpha, beta)
        Quantile function, $\alpha p^{1/\beta}$.
    sample(n, alpha, beta, random_state=None)
        Random variates via inverse transform.
    """

    def _argcheck(self, alpha, beta):
        return (alpha > 0) & (beta > 0)

    def _get_support(self, alpha, beta):
        return self.a, alpha

    def _pdf(self, x, alpha, beta):
        return np.exp(self._logpdf(x, alpha, beta))

    def _logpdf(self, x, alpha, beta):
        out = np.full(x.shape, -np.inf)
        inside = (x > 0.0) & (x < alpha)
        return _masked(
            out,
            inside,
            lambda x, a, b: np.log(b) + np.log(x) * (b - 1.0) - np.log(a) * b,
            x,
            alpha,
            beta,
        )

    def _logcdf(self, x, alpha, beta):
        out = np.where(x >= alpha, 0.0, -np.inf)
        inside = (x > 0.0) & (x < alpha)
        return _masked(out, inside, lambda x, a, b: (np.log(x) - np.log(a)) * b, x, alpha, beta)

    def _cdf(self, x, alpha, beta):
        return np.exp(self._logcdf(x, alpha, beta))

    def _ppf(self, q, alpha, beta):
        return alpha * np.power(q, 1.0 / beta)


power = power_gen(a=0.0, name="power")


#########################
## Unit Interval       ##
#########################


class kumaraswamy_gen(ExtraContinuous):
    r"""Kumaraswamy Distribution

    Methods
    -------
    density(x, a, b)
        Probability density function.
    cumulative(x, a, b)
        Cumulative distribution function.
    quantile(q, a, b)
        Quantile function (inverse of CDF).
    sample(n, a, b, random_state=None)
        Random variates.

    Notes
    -----
    $$
    f(x) = a b x^{a-1} (1 - x^a)^{b-1}, \qquad
    F(x) = 1 - (1 - x^a)^b, \qquad
    F^{-1}(p) = \left(1 - (1 - p)^{1/b}\right)^{1/a}
    $$

    The log-density is computed directly so that extreme shapes do not
    underflow.

    References
    ----------
    - Jones, M.C. (2009). Kumaraswamy's distribution: A beta-type distribution
      with some tractability advantages. Statistical Methodology, 6, 70-81.
    """

    def _argcheck(self, a, b):
        return (a > 0) & (b > 0)

    def _pdf(self, x, a, b):
        out = np.zeros(x.shape)
        inside = (x >= 0.0) & (x <= 1.0)
        with np.errstate(divide="ignore"):
            return _masked(
                out,
                inside,
                lambda x, a, b: a * b * np.power(x, a - 1.0) * np.power(1.0 - np.power(x, a), b - 1.0),
                x,
                a,
                b,
            )

    def _logpdf(self, x, a, b):
        out = np.full(x.shape, -np.inf)
        inside = (x >= 0.0) & (x <= 1.0)
        with np.errstate(divide="ignore"):
            return _masked(
                out,
                inside,
                lambda x, a, b: np.log(a) + np.log(b) + xlogy(a - 1.0, x) + xlog1py(b - 1.0, -np.power(x, a)),
                x,
                a,
                b,
            )

    def _cdf(self, x, a, b):
        out = np.where(x >= 1.0, 1.0, 0.0)
        inside = (x >= 0.0) & (x < 1.0)
        return _masked(out, inside, lambda x, a, b: -np.expm1(b * np.log1p(-np.power(x, a))), x, a, b)

    def _sf(self, x, a, b):
        out = np.where(x < 0.0, 1.0, 0.0)
        inside = (x >= 0.0) & (x < 1.0)
        return _masked(out, inside, lambda x, a, b: np.exp(b * np.log1p(-np.power(x, a))), x, a, b)

    def _ppf(self, q, a, b):
        with np.errstate(divide="ignore"):
            return np.power(-np.expm1(np.log1p(-q) / b), 1.0 / a)

    def _rvs(self, a, b, size=None, random_state=None):
        u = random_state.uniform(size=size)
        return np.power(1.0 - np.power(u, 1.0 / b), 1.0 / a)


kumaraswamy = kumaraswamy_gen(a=0.0, b=1.0, name="kumaraswamy")


class proportion_gen(ExtraContinuous):
    r"""Beta Distribution of Proportions

    Beta law re-parametrized by its ``mean`` and a ``precision`` (also
    accepted as ``size=``); the shapes are
    $\alpha = \text{precision}\cdot\text{mean} + 1$ and
    $\beta = \text{precision}\cdot(1 - \text{mean}) + 1$. All four operations
    delegate to ``scipy.stats.beta``.

    Methods
    -------
    density(x, precision, mean)
    cumulative(x, precision, mean)
    quantile(q, precision, mean)
    sample(n, precision, mean, random_state=None)

    References
    ----------
    - Ferrari, S., & Cribari-Neto, F. (2004). Beta regression for modelling
      rates and proportions. Journal of Applied Statistics, 31(7), 799-815.
    """

    _shape_aliases = {"size": "precision"}

    def _argcheck(self, precision, mean):
        return (precision > 0) & (mean >= 0) & (mean <= 1)

    @staticmethod
    def _beta_shapes(precision, mean):
        return precision * mean + 1.0, precision * (1.0 - mean) + 1.0

    def _pdf(self, x, precision, mean):
        return beta_dist.pdf(x, *self._beta_shapes(precision, mean))

    def _logpdf(self, x, precision, mean):
        return beta_dist.logpdf(x, *self._beta_shapes(precision, mean))

    def _cdf(self, x, precision, mean):
        return beta_dist.cdf(x, *self._beta_shapes(precision, mean))

    def _sf(self, x, precision, mean):
        return beta_dist.sf(x, *self._beta_shapes(precision, mean))

    def _ppf(self, q, precision, mean):
        return beta_dist.ppf(q, *self._beta_shapes(precision, mean))

    def _rvs(self, precision, mean, size=None, random_state=None):
        return random_state.beta(*self._beta_shapes(precision, mean), size=size)


proportion = proportion_gen(a=0.0, b=1.0, name="proportion")


#########################
## Quantile-defined    ##
#########################


class tukeylambda_gen(ExtraContinuous):
    r"""Tukey Lambda Distribution

    Defined through its quantile function

    $$
    Q(p) = \begin{cases}
        \frac{p^\lambda - (1 - p)^\lambda}{\lambda} & \lambda \neq 0 \\
        \log p - \log(1 - p) & \lambda = 0
    \end{cases}
    $$

    The CDF has no closed form and is obtained by numerically inverting
    $Q$ (``scipy.special.tklmbda``). The density follows from
    $f(x) = 1 / Q'(F(x))$ with $Q'(p) = p^{\lambda - 1} + (1 - p)^{\lambda - 1}$.
    For $\lambda > 0$ the support is $[-1/\lambda, 1/\lambda]$, otherwise it is
    the whole real line; $\lambda = 0$ is the logistic law.

    References
    ----------
    - Joiner, B.L., & Rosenblatt, J.R. (1971). Some properties of the range in
      samples from Tukey's symmetric lambda distributions. JASA, 66(334), 394-399.
    - Hastings Jr, C., Mosteller, F., Tukey, J.W., & Winsor, C.P. (1947).
      Low moments for small samples: a comparative study of order statistics.
      The Annals of Mathematical Statistics, 413-426.
    """

    def _argcheck(self, lmbd):
        return np.isfinite(lmbd)

    def _pdf(self, x, lmbd):
        p = np.asarray(tklmbda(x, lmbd))
        with np.errstate(divide="ignore"):
            slope = np.power(p, lmbd - 1.0) + np.power(1.0 - p, lmbd - 1.0)
            inside = (lmbd <= 0) | (np.abs(x) < 1.0 / lmbd)
            return np.where(inside, 1.0 / slope, 0.0)

    def _cdf(self, x, lmbd):
        return np.asarray(tklmbda(x, lmbd), dtype=float)

    def _ppf(self, q, lmbd):
        out = np.empty(q.shape)
        logistic = lmbd == 0.0
        with np.errstate(divide="ignore"):
            _masked(out, logistic, lambda q: np.log(q) - np.log1p(-q), q)
            _masked(
                out,
                ~logistic,
                lambda q, lm: (np.power(q, lm) - np.power(1.0 - q, lm)) / lm,
                q,
                lmbd,
            )
        return out


tukeylambda = tukeylambda_gen(name="tukeylambda")
