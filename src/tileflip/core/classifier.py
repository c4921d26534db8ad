"""Classification of decoded tiles and admission of flip candidates."""

from collections.abc import Callable
from enum import Enum

from tileflip.core.aggregator import OutcomeAggregator
from tileflip.core.decoder import mask_identity
from tileflip.core.interfaces import IdentityProvider
from tileflip.schemas.types import UNOWNED, Cell, Coordinate
from tileflip.utils.admission import AdmissionPolicy
from tileflip.utils.errors import DecodeError
from tileflip.utils.telemetry import get_logger, record_update

logger = get_logger(__name__)


class Classification(str, Enum):
    """Outcome of classifying one tile update."""

    SELF_OWNED = "self_owned"
    AVAILABLE_ADMITTED = "available_admitted"
    AVAILABLE_REJECTED = "available_rejected"
    FOREIGN = "foreign"


class CandidateClassifier:
    """Routes decoded tiles to the aggregator or the pending queue.

    Tiles owned by the local identity feed powerup statistics, unowned
    tiles go through the admission policy, anything else is ignored.
    """

    def __init__(
        self,
        aggregator: OutcomeAggregator,
        admission: AdmissionPolicy,
        identity_provider: IdentityProvider,
        enqueue: Callable[[Coordinate], None],
    ):
        """Initialize the classifier.

        Args:
            aggregator: Metrics owner
            admission: Policy deciding which available tiles are queued
            identity_provider: Source of the local identity
            enqueue: Sink for admitted coordinates (the scheduler)
        """
        self.aggregator = aggregator
        self.admission = admission
        self.identity_provider = identity_provider
        self._enqueue = enqueue

    def _local_owner(self) -> str | None:
        identity = self.identity_provider.identity
        if not identity:
            return None
        try:
            masked = mask_identity(identity)
        except DecodeError:
            logger.warning("Local identity is not valid hex", identity=identity)
            return None
        # Identities of four nibbles or fewer mask to the unowned sentinel
        return None if masked == UNOWNED else masked

    def classify(self, cell: Cell) -> Classification:
        """Classify one decoded tile and act on it.

        Args:
            cell: Decoded tile

        Returns:
            What was done with the tile
        """
        local = self._local_owner()

        if local is not None and cell.owner == local:
            self.aggregator.record_self_owned(cell)
            record_update("self_owned")
            return Classification.SELF_OWNED

        if cell.is_unowned:
            record_update("available")
            if not self.admission.admit():
                return Classification.AVAILABLE_REJECTED
            coordinate = cell.coordinate
            self.aggregator.mark_pending(coordinate)
            self._enqueue(coordinate)
            return Classification.AVAILABLE_ADMITTED

        record_update("foreign")
        return Classification.FOREIGN
