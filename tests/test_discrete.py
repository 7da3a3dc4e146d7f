import warnings

import numpy as np
import pytest
from scipy import stats

from pyextradist.base import (
    DimensionMismatchError,
    ImproperValueWarning,
    NaNsProducedWarning,
    NAsProducedWarning,
)
from pyextradist.discrete import bernoulli, categorical, gpois, multinomial, zib
from pyextradist.utils import EvaluationInterrupted, set_interrupt_handler


@pytest.fixture
def stop_immediately():
    set_interrupt_handler(lambda: True)
    yield
    set_interrupt_handler(None)


######################
## Bernoulli        ##
######################


def test_bernoulli_values():
    np.testing.assert_allclose(bernoulli.density(1, prob=0.3), [0.3])
    np.testing.assert_allclose(bernoulli.density(0, prob=0.3), [0.7])
    np.testing.assert_allclose(bernoulli.cumulative(0.5, prob=0.3), [0.7])
    np.testing.assert_allclose(bernoulli.cumulative([-1.0, 0.0, 1.0, 2.0], 0.3), [0.0, 0.7, 1.0, 1.0])
    np.testing.assert_allclose(
        bernoulli.cumulative([-1.0, 0.0, 1.0], 0.3, lower_tail=False), [1.0, 0.3, 0.0]
    )
    np.testing.assert_allclose(bernoulli.quantile([0.0, 0.7, 0.71, 1.0], 0.3), [0.0, 0.0, 1.0, 1.0])
    np.testing.assert_allclose(bernoulli.density([0, 1], 0.3, log=True), np.log([0.7, 0.3]))


def test_bernoulli_improper_values_warn_per_element():
    with pytest.warns(ImproperValueWarning, match="improper x = 0.500000") as record:
        out = bernoulli.density([0.5, 1.0, 2.0], 0.3)
    np.testing.assert_allclose(out, [0.0, 0.3, 0.0])
    assert sum(1 for w in record if issubclass(w.category, ImproperValueWarning)) == 2


def test_bernoulli_invalid_probability():
    with pytest.warns(NaNsProducedWarning):
        out = bernoulli.density(1, [0.3, 1.5, -0.1])
    np.testing.assert_array_equal(np.isnan(out), [False, True, True])


def test_bernoulli_sample():
    draws = bernoulli.sample(10000, 0.3, random_state=1)
    assert set(np.unique(draws)) <= {0.0, 1.0}
    np.testing.assert_allclose(draws.mean(), 0.3, atol=0.02)
    np.testing.assert_array_equal(bernoulli.sample(5, 0.0, random_state=1), np.zeros(5))
    np.testing.assert_array_equal(bernoulli.sample(5, 1.0, random_state=1), np.ones(5))


######################
## Zero-inflated    ##
######################


def test_zib_values():
    size, prob, pi = 5.0, 0.3, 0.2
    np.testing.assert_allclose(zib.density(0, size, prob, pi), [pi + (1.0 - pi) * 0.7**5])
    np.testing.assert_allclose(
        zib.density([2, 5], size, prob, pi), (1.0 - pi) * stats.binom.pmf([2, 5], 5, 0.3)
    )
    np.testing.assert_allclose(zib.density([-1.0, 1.5, 6.0], size, prob, pi), [0.0, 0.0, 0.0])
    np.testing.assert_allclose(
        zib.cumulative([-1.0, 2.0, 2.5, 5.0, np.inf], size, prob, pi),
        [0.0, pi + (1.0 - pi) * stats.binom.cdf(2, 5, 0.3), pi + (1.0 - pi) * stats.binom.cdf(2, 5, 0.3), 1.0, 1.0],
    )


def test_zib_upper_tail():
    x = np.array([-1.0, 0.0, 1.0, 3.0, 5.0])
    lower = zib.cumulative(x, 5, 0.3, 0.2)
    upper = zib.cumulative(x, 5, 0.3, 0.2, lower_tail=False)
    np.testing.assert_allclose(upper, 1.0 - lower, atol=1e-12)


def test_zib_quantile():
    size, prob, pi = 5.0, 0.3, 0.2
    np.testing.assert_allclose(zib.quantile([0.0, 0.1, 0.19], size, prob, pi), [0.0, 0.0, 0.0])
    expected = stats.binom.ppf((0.5 - pi) / (1.0 - pi), 5, 0.3)
    np.testing.assert_allclose(zib.quantile(0.5, size, prob, pi), [expected])
    np.testing.assert_allclose(zib.quantile(1.0, size, prob, pi), [5.0])
    np.testing.assert_allclose(zib.quantile(0.9, size, prob, 1.0), [0.0])


def test_zib_pmf_sums_to_one():
    x = np.arange(0, 11)
    np.testing.assert_allclose(zib.density(x, 10, 0.45, 0.35).sum(), 1.0)


def test_zib_invalid_parameters():
    with pytest.warns(NaNsProducedWarning):
        out = zib.density(1, [5.0, 2.5, -1.0, 5.0], [0.3, 0.3, 0.3, 0.3], [0.2, 0.2, 0.2, 1.2])
    np.testing.assert_array_equal(np.isnan(out), [False, True, True, True])


def test_zib_sample_zero_fraction():
    draws = zib.sample(20000, 5, 0.3, 0.2, random_state=42)
    assert np.all((draws >= 0.0) & (draws <= 5.0))
    assert np.all(draws == np.floor(draws))
    np.testing.assert_allclose(np.mean(draws == 0.0), 0.2 + 0.8 * 0.7**5, atol=0.015)


######################
## Gamma-Poisson    ##
######################


def test_gpois_matches_negative_binomial():
    x = np.arange(0, 30)
    alpha, beta = 5.0, 2.0
    p = 1.0 / (1.0 + beta)
    np.testing.assert_allclose(gpois.density(x, alpha, beta), stats.nbinom.pmf(x, alpha, p), rtol=1e-10)
    np.testing.assert_allclose(gpois.cumulative(x, alpha, beta), stats.nbinom.cdf(x, alpha, p), rtol=1e-9)


def test_gpois_cumulative_is_monotone():
    x = np.arange(0, 51)
    cdf = gpois.cumulative(x, 5.0, 2.0)
    assert np.all(np.diff(cdf) >= 0.0)
    assert np.all((cdf > 0.0) & (cdf <= 1.0))
    np.testing.assert_allclose(np.cumsum(gpois.density(x, 5.0, 2.0)), cdf, rtol=1e-10)


def test_gpois_cumulative_boundaries():
    np.testing.assert_allclose(gpois.cumulative([-1.0, 2.5, np.inf], 3.0, 0.5), [0.0, gpois.cumulative(2, 3.0, 0.5)[0], 1.0])
    np.testing.assert_allclose(gpois.density([-1.0, 2.5], 3.0, 0.5), [0.0, 0.0])


def test_gpois_cumulative_shares_tables_across_repeated_pairs():
    x = np.array([3.0, 10.0, 3.0, 7.0])
    alpha = np.array([5.0, 1.0, 5.0, 5.0])
    beta = np.array([2.0, 1.0, 2.0, 2.0])
    together = gpois.cumulative(x, alpha, beta)
    apart = np.array([gpois.cumulative(xi, a, b)[0] for xi, a, b in zip(x, alpha, beta)])
    np.testing.assert_allclose(together, apart, rtol=1e-12)


def test_gpois_quantile():
    q = np.array([0.05, 0.5, 0.9, 0.999])
    alpha, beta = 5.0, 2.0
    expected = stats.nbinom.ppf(q, alpha, 1.0 / (1.0 + beta))
    np.testing.assert_allclose(gpois.quantile(q, alpha, beta), expected)
    np.testing.assert_allclose(gpois.quantile(1.0, alpha, beta), [np.inf])
    np.testing.assert_allclose(gpois.quantile(0.0, alpha, beta), [0.0])


def test_gpois_quantile_far_in_the_upper_tail():
    p = 1.0 / 3.0
    q = 1.0 - 1e-15
    out = gpois.quantile(q, 5.0, 2.0)
    assert np.isfinite(out[0])
    np.testing.assert_allclose(out, stats.nbinom.ppf(q, 5.0, p))
    np.testing.assert_allclose(
        gpois.quantile(np.log(1e-15), 5.0, 2.0, lower_tail=False, log=True),
        gpois.quantile(1e-15, 5.0, 2.0, lower_tail=False),
        rtol=0.0,
        atol=1.0,
    )


def test_gpois_upper_tail_keeps_precision():
    p = 1.0 / 3.0
    upper = gpois.cumulative(200, 5.0, 2.0, lower_tail=False)
    assert upper[0] < 1e-25
    np.testing.assert_allclose(upper, stats.nbinom.sf(200, 5.0, p), rtol=1e-8)
    np.testing.assert_allclose(
        gpois.cumulative(200, 5.0, 2.0, lower_tail=False, log=True), stats.nbinom.logsf(200, 5.0, p), rtol=1e-8
    )
    np.testing.assert_allclose(gpois.cumulative([-1.0, np.inf], 5.0, 2.0, lower_tail=False), [1.0, 0.0])


def test_gpois_cumulative_polls_per_element_looked_up():
    calls = []
    set_interrupt_handler(lambda: calls.append(1) and False)
    try:
        gpois.cumulative(np.r_[np.full(1001, -1.0), 5.0], 2.0, 1.0)
    finally:
        set_interrupt_handler(None)
    # once for the first looked-up element and once for the single table chunk
    assert len(calls) == 2


def test_gpois_invalid_parameters():
    with pytest.warns(NaNsProducedWarning):
        out = gpois.cumulative(2, [1.0, 0.0, 1.0], [1.0, 1.0, -1.0])
    np.testing.assert_array_equal(np.isnan(out), [False, True, True])


def test_gpois_sample_mean():
    draws = gpois.sample(20000, 5.0, 2.0, random_state=3)
    assert np.all(draws == np.floor(draws))
    np.testing.assert_allclose(draws.mean(), 10.0, atol=0.2)


def test_gpois_cumulative_can_be_interrupted(stop_immediately):
    with pytest.raises(EvaluationInterrupted):
        gpois.cumulative(5, 2.0, 1.0)


######################
## Categorical      ##
######################


def test_categorical_values():
    prob = [[0.2, 0.3, 0.5]]
    np.testing.assert_allclose(categorical.density(2, prob), [0.3])
    np.testing.assert_allclose(categorical.cumulative(2, prob), [0.5])
    np.testing.assert_allclose(categorical.quantile(0.5, prob), [2.0])

    np.testing.assert_allclose(categorical.density([0, 1.5, 4], prob), [0.0, 0.0, 0.0])
    np.testing.assert_allclose(categorical.cumulative([0.0, 2.5, 3.0, 7.0], prob), [0.0, 0.5, 1.0, 1.0])
    np.testing.assert_allclose(categorical.quantile([0.0, 0.19, 0.21, 0.6, 1.0], prob), [1.0, 1.0, 2.0, 3.0, 3.0])


def test_categorical_normalizes_rows():
    np.testing.assert_allclose(categorical.density([1, 2, 3], [2.0, 3.0, 5.0]), [0.2, 0.3, 0.5])


def test_categorical_recycles_rows():
    prob = [[0.2, 0.8], [0.6, 0.4]]
    np.testing.assert_allclose(categorical.density([1, 1, 1], prob), [0.2, 0.6, 0.2])
    np.testing.assert_allclose(categorical.density(1, prob), [0.2, 0.6])


def test_categorical_tail_and_log_flags():
    prob = [[0.2, 0.3, 0.5]]
    np.testing.assert_allclose(categorical.cumulative(2, prob, lower_tail=False), [0.5])
    np.testing.assert_allclose(categorical.cumulative(1, prob, log=True), [np.log(0.2)])
    np.testing.assert_allclose(categorical.density(3, prob, log=True), [np.log(0.5)])
    np.testing.assert_allclose(categorical.quantile(np.log(0.4), prob, log=True), [2.0])


def test_categorical_bad_rows():
    with pytest.warns(NaNsProducedWarning):
        out = categorical.density([1, 1], [[-1.0, 2.0], [0.5, 0.5]])
    np.testing.assert_array_equal(np.isnan(out), [True, False])

    with warnings.catch_warnings():
        warnings.simplefilter("error")
        out = categorical.density([1, 1], [[np.nan, 1.0], [0.5, 0.5]])
    np.testing.assert_array_equal(np.isnan(out), [True, False])

    with pytest.warns(NaNsProducedWarning):
        categorical.quantile(1.5, [[0.5, 0.5]])


def test_categorical_sample():
    prob = [[0.2, 0.3, 0.5]]
    draws = categorical.sample(20000, prob, random_state=8)
    assert set(np.unique(draws)) <= {1.0, 2.0, 3.0}
    np.testing.assert_allclose([np.mean(draws == k) for k in (1, 2, 3)], [0.2, 0.3, 0.5], atol=0.015)
    assert categorical.sample(0, prob).shape == (0,)

    with pytest.warns(NAsProducedWarning):
        draws = categorical.sample(4, [[0.5, 0.5], [0.0, 0.0]], random_state=8)
    np.testing.assert_array_equal(np.isnan(draws), [False, True, False, True])


def test_categorical_sample_is_quantile_of_uniforms():
    prob = [[0.2, 0.3, 0.5], [0.4, 0.6, 0.0]]
    draws = categorical.sample(2000, prob, random_state=21)
    u = np.random.default_rng(21).uniform(size=2000)
    np.testing.assert_array_equal(draws, categorical.quantile(u, prob))
    # a category with zero probability is never drawn
    assert not np.any(draws[1::2] == 3.0)
    # a probability on a category boundary maps to the lower category
    np.testing.assert_array_equal(categorical.quantile([0.5, 0.4], prob), [2.0, 1.0])


######################
## Multinomial      ##
######################


def test_multinomial_density():
    np.testing.assert_allclose(multinomial.density([2, 1, 0], 3, [[0.5, 0.3, 0.2]]), [3.0 * 0.25 * 0.3])
    np.testing.assert_allclose(
        multinomial.density([[2, 1, 0], [0, 0, 3]], 3, [0.5, 0.3, 0.2]), [0.225, 0.2**3]
    )
    np.testing.assert_allclose(
        multinomial.density([2, 1, 0], 3, [5.0, 3.0, 2.0], log=True), [np.log(0.225)]
    )


def test_multinomial_wrong_counts_have_zero_mass():
    np.testing.assert_allclose(multinomial.density([2, 2, 0], 3, [0.5, 0.3, 0.2]), [0.0])
    np.testing.assert_allclose(multinomial.density([2, 2, 0], 3, [0.5, 0.3, 0.2], log=True), [-np.inf])
    np.testing.assert_allclose(multinomial.density([4, -1, 0], 3, [0.5, 0.3, 0.2]), [0.0])
    np.testing.assert_allclose(multinomial.density([1.5, 1.5, 0], 3, [0.5, 0.3, 0.2]), [0.0])


def test_multinomial_column_mismatch():
    with pytest.raises(DimensionMismatchError, match="Number of columns"):
        multinomial.density([1, 2], 3, [0.5, 0.3, 0.2])


def test_multinomial_invalid_parameters():
    with pytest.warns(NaNsProducedWarning):
        out = multinomial.density([2, 1, 0], [3.0, 2.5], [0.5, 0.3, 0.2])
    np.testing.assert_array_equal(np.isnan(out), [False, True])

    with pytest.warns(NaNsProducedWarning):
        out = multinomial.density([2, 1, 0], 3, [[-0.5, 0.3, 0.2]])
    assert np.isnan(out[0])


def test_multinomial_sample():
    draws = multinomial.sample(500, [10, 20], [0.2, 0.3, 0.5], random_state=4)
    assert draws.shape == (500, 3)
    np.testing.assert_array_equal(draws.sum(axis=1), np.tile([10.0, 20.0], 250))
    assert np.all(draws >= 0.0)
    np.testing.assert_allclose(draws[::2].mean(axis=0), [2.0, 3.0, 5.0], atol=0.3)

    assert multinomial.sample(0, 3, [0.5, 0.5]).shape == (0, 2)


def test_multinomial_sample_bad_rows():
    with pytest.warns(NAsProducedWarning):
        draws = multinomial.sample(2, [3, 2.5], [0.5, 0.5], random_state=4)
    assert np.all(np.isfinite(draws[0]))
    assert np.all(np.isnan(draws[1]))


def test_multinomial_exposes_only_mass_and_sampler():
    assert not hasattr(multinomial, "cumulative")
    assert not hasattr(multinomial, "quantile")
    np.testing.assert_allclose(multinomial.pmf([2, 1, 0], 3, [0.5, 0.3, 0.2]), [0.225])
    np.testing.assert_allclose(multinomial.density([2, 1, 0], size=3, prob=[0.5, 0.3, 0.2]), [0.225])


def test_multinomial_freeze():
    frozen = multinomial(trials=3, prob=[0.5, 0.3, 0.2], seed=1)
    np.testing.assert_allclose(frozen.density([2, 1, 0]), [0.225])
    np.testing.assert_allclose(frozen.logpmf([2, 1, 0]), [np.log(0.225)])
    np.testing.assert_allclose(
        frozen.rvs(size=4, random_state=6),
        multinomial.sample(4, 3, [0.5, 0.3, 0.2], random_state=6),
    )
    assert isinstance(frozen.random_state, np.random.RandomState)


def test_multinomial_sample_can_be_interrupted(stop_immediately):
    with pytest.raises(EvaluationInterrupted):
        multinomial.sample(3, 5, [0.5, 0.5], random_state=1)


def test_multinomial_sample_polls_on_the_first_drawn_row(stop_immediately):
    # only the last row is valid; polling follows the number of rows drawn
    trials = np.r_[np.full(1001, -1.0), 3.0]
    with pytest.raises(EvaluationInterrupted):
        multinomial.sample(1002, trials, [0.5, 0.5], random_state=1)
