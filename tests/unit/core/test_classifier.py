"""Unit tests for candidate classification and admission."""

import random
from unittest.mock import patch

import pytest

from tileflip.adapters.memory import StaticIdentity
from tileflip.core.aggregator import OutcomeAggregator
from tileflip.core.classifier import CandidateClassifier, Classification
from tileflip.core.decoder import decode_packed_state
from tileflip.schemas.types import Cell, Coordinate, Powerup
from tileflip.utils.admission import BernoulliAdmission

LOCAL = "0x0" + "5e1f" * 15 + "abc"
# What a packed state keeps of LOCAL
OWN = "0x" + "5e1f" * 14 + "5e1"


@pytest.fixture
def aggregator():
    return OutcomeAggregator(clock=lambda: 0.0)


@pytest.fixture
def queued():
    return []


def make_classifier(aggregator, queued, sample_factor=1.0, identity=LOCAL, rng=None):
    return CandidateClassifier(
        aggregator,
        BernoulliAdmission(sample_factor, rng=rng),
        StaticIdentity(identity),
        enqueue=queued.append,
    )


class TestClassify:
    """Test CandidateClassifier.classify."""

    def test_self_owned(self, aggregator, queued):
        """A tile owned by the masked local identity feeds the powerup stats."""
        classifier = make_classifier(aggregator, queued)
        cell = Cell(x=1, y=2, owner=OWN, powerup=Powerup.MULTIPLIER, powerup_value=3)

        result = classifier.classify(cell)

        assert result == Classification.SELF_OWNED
        assert aggregator.powerup_stats(Powerup.MULTIPLIER).count == 1
        assert queued == []

    def test_packed_state_of_full_width_identity(self, aggregator, queued):
        """A tile packed over a real identity is recognised as our own."""
        classifier = make_classifier(aggregator, queued)
        cell = decode_packed_state(LOCAL[:-4] + "1073", x=9, y=9)

        result = classifier.classify(cell)

        assert result == Classification.SELF_OWNED
        assert aggregator.powerup_stats(Powerup.MULTIPLIER).values == [7]
        assert aggregator.history[-1].success

    def test_available_admitted(self, aggregator, queued):
        """Unowned tiles are queued and marked pending when admitted."""
        classifier = make_classifier(aggregator, queued, sample_factor=1.0)

        result = classifier.classify(Cell(x=4, y=5))

        assert result == Classification.AVAILABLE_ADMITTED
        assert queued == [Coordinate(4, 5)]
        assert aggregator.positions().pending == [Coordinate(4, 5)]

    def test_available_rejected(self, aggregator, queued):
        """A zero sample factor admits nothing."""
        classifier = make_classifier(aggregator, queued, sample_factor=0.0)

        result = classifier.classify(Cell(x=4, y=5))

        assert result == Classification.AVAILABLE_REJECTED
        assert queued == []
        assert aggregator.positions().pending == []

    def test_foreign(self, aggregator, queued):
        """Tiles owned by someone else are ignored."""
        classifier = make_classifier(aggregator, queued)

        result = classifier.classify(Cell(x=0, y=0, owner="0xdef"))

        assert result == Classification.FOREIGN
        assert queued == []
        assert aggregator.history == ()

    def test_no_identity_treats_owned_as_foreign(self, aggregator, queued):
        """Without a connected identity nothing is self-owned."""
        classifier = make_classifier(aggregator, queued, identity=None)

        result = classifier.classify(Cell(x=0, y=0, owner=OWN))

        assert result == Classification.FOREIGN

    def test_invalid_identity_treats_owned_as_foreign(self, aggregator, queued):
        """A malformed identity is ignored rather than raised."""
        classifier = make_classifier(aggregator, queued, identity="wallet")

        result = classifier.classify(Cell(x=0, y=0, owner=OWN))

        assert result == Classification.FOREIGN

    def test_short_identity_owns_nothing(self, aggregator, queued):
        """An identity that masks to the sentinel never claims a tile."""
        classifier = make_classifier(aggregator, queued, identity="0xabc")

        assert classifier.classify(Cell(x=0, y=0)) == Classification.AVAILABLE_ADMITTED
        assert classifier.classify(Cell(x=0, y=1, owner="0xabc")) == Classification.FOREIGN

    def test_unowned_with_identity_still_available(self, aggregator, queued):
        """The sentinel never matches the local identity."""
        classifier = make_classifier(aggregator, queued, identity="0x0")

        result = classifier.classify(Cell(x=0, y=0))

        assert result == Classification.AVAILABLE_ADMITTED

    def test_identity_changes_apply_immediately(self, aggregator, queued):
        """The identity is read on every classification."""
        identity = StaticIdentity(None)
        classifier = CandidateClassifier(
            aggregator, BernoulliAdmission(1.0), identity, enqueue=queued.append
        )
        cell = Cell(x=0, y=0, owner=OWN)

        assert classifier.classify(cell) == Classification.FOREIGN
        identity.connect(LOCAL.upper())
        assert classifier.classify(cell) == Classification.SELF_OWNED

    @patch("tileflip.core.classifier.record_update")
    def test_records_update_metric(self, mock_record, aggregator, queued):
        """Each classification is counted by kind."""
        classifier = make_classifier(aggregator, queued)

        classifier.classify(Cell(x=0, y=0))
        classifier.classify(Cell(x=0, y=0, owner=OWN))
        classifier.classify(Cell(x=0, y=0, owner="0x123"))

        assert [c.args[0] for c in mock_record.call_args_list] == [
            "available",
            "self_owned",
            "foreign",
        ]


class TestSampling:
    """Test probabilistic admission through the classifier."""

    def test_admission_frequency(self, aggregator, queued):
        """Over many trials the admitted share approaches the sample factor."""
        classifier = make_classifier(
            aggregator, queued, sample_factor=0.3, rng=random.Random(1234)
        )

        trials = 10_000
        for i in range(trials):
            classifier.classify(Cell(x=i % 256, y=0))

        assert len(queued) / trials == pytest.approx(0.3, abs=0.03)

    def test_seeded_rng_is_deterministic(self, aggregator):
        """The same seed admits the same candidates."""
        runs = []
        for _ in range(2):
            queued: list[Coordinate] = []
            classifier = make_classifier(
                OutcomeAggregator(), queued, sample_factor=0.5, rng=random.Random(7)
            )
            for i in range(50):
                classifier.classify(Cell(x=i, y=0))
            runs.append(queued)

        assert runs[0] == runs[1]
