from importlib import metadata as _metadata

from .base import (
    DimensionMismatchError,
    ExtraContinuous,
    ExtraContinuousFrozen,
    ExtraDiscrete,
    ExtraDiscreteFrozen,
    ImproperValueWarning,
    NaNsProducedWarning,
    NAsProducedWarning,
)
from .discrete import bernoulli, categorical, gpois, multinomial, zib
from .distributions import (
    huber,
    kumaraswamy,
    laplace,
    power,
    proportion,
    rayleigh,
    tukeylambda,
)
from .utils import EvaluationInterrupted, set_interrupt_handler

try:  # Prefer installed package metadata
    __version__ = _metadata.version("pyextradist")
except _metadata.PackageNotFoundError:  # pragma: no cover - during local dev
    from .version import __version__

__all__ = [
    "bernoulli",
    "categorical",
    "gpois",
    "huber",
    "kumaraswamy",
    "laplace",
    "multinomial",
    "power",
    "proportion",
    "rayleigh",
    "tukeylambda",
    "zib",
    "ExtraContinuous",
    "ExtraContinuousFrozen",
    "ExtraDiscrete",
    "ExtraDiscreteFrozen",
    "NaNsProducedWarning",
    "NAsProducedWarning",
    "ImproperValueWarning",
    "DimensionMismatchError",
    "EvaluationInterrupted",
    "set_interrupt_handler",
    "__version__",
]
