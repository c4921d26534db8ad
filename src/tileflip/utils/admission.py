"""Admission policies for available tiles.

Candidate volume is bounded by sampling rather than by blocking: each
available tile is admitted into the pending queue with a configurable
probability, so high event rates shed load before anything is queued.
"""

import random
from abc import ABC, abstractmethod

from tileflip.utils.errors import ConfigurationError
from tileflip.utils.telemetry import record_admission

SAMPLE_FACTOR_BOUNDS = (0.0, 1.0)


class AdmissionPolicy(ABC):
    """Abstract base class for admission policies.

    Defines the interface for deciding whether an available tile becomes a
    dispatch candidate.
    """

    @abstractmethod
    def decide(self) -> bool:
        """Return True if the next candidate should be admitted."""
        pass

    @property
    @abstractmethod
    def policy_name(self) -> str:
        """Get the policy name for metrics and logging."""
        pass

    def admit(self) -> bool:
        """Decide on one candidate and record the decision.

        Returns:
            True if the candidate is admitted
        """
        admitted = self.decide()
        record_admission(admitted, self.policy_name)
        return admitted


class BernoulliAdmission(AdmissionPolicy):
    """Admit each candidate independently with probability ``sample_factor``.

    A factor of 0 never admits and a factor of 1 always admits; neither
    consults the random source.
    """

    def __init__(self, sample_factor: float = 1.0, rng: random.Random | None = None):
        """Initialize Bernoulli admission.

        Args:
            sample_factor: Admission probability in [0, 1]
            rng: Random source (seed it for deterministic tests)

        Raises:
            ConfigurationError: If sample_factor is outside [0, 1]
        """
        self._sample_factor = self._validate(sample_factor)
        self._rng = rng or random.Random()

    @staticmethod
    def _validate(sample_factor: float) -> float:
        low, high = SAMPLE_FACTOR_BOUNDS
        if isinstance(sample_factor, bool) or not isinstance(
            sample_factor, int | float
        ):
            raise ConfigurationError("sample_factor", sample_factor, SAMPLE_FACTOR_BOUNDS)
        if not low <= sample_factor <= high:
            raise ConfigurationError("sample_factor", sample_factor, SAMPLE_FACTOR_BOUNDS)
        return float(sample_factor)

    @property
    def policy_name(self) -> str:
        return "bernoulli"

    @property
    def sample_factor(self) -> float:
        return self._sample_factor

    @sample_factor.setter
    def sample_factor(self, value: float) -> None:
        self._sample_factor = self._validate(value)

    def decide(self) -> bool:
        if self._sample_factor <= 0.0:
            return False
        if self._sample_factor >= 1.0:
            return True
        return self._rng.random() < self._sample_factor
