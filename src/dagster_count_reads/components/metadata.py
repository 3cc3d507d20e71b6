"""
Reference sequence metadata providers.

Used to resolve "to end of sequence" intervals and whole-genome runs into
concrete sequence lengths.
"""

import logging
from typing import Dict, List, Optional, Protocol, Tuple

from .paginator import call_with_retries

logger = logging.getLogger(__name__)


class SequenceMetadataProvider(Protocol):
    def resolve(self, sequence_name: str) -> Optional[int]:
        """Length of ``sequence_name``, or None if it is not known."""
        ...

    def sequences(self) -> List[Tuple[str, int]]:
        """All known sequences as ``(name, length)`` in reference order."""
        ...


class StaticSequenceMetadata:
    """Sequence lengths given up front."""

    def __init__(self, lengths: Optional[Dict[str, int]] = None):
        self.lengths = dict(lengths or {})

    def resolve(self, sequence_name: str) -> Optional[int]:
        return self.lengths.get(sequence_name)

    def sequences(self) -> List[Tuple[str, int]]:
        return list(self.lengths.items())


class ApiSequenceMetadata:
    """
    Sequence lengths from the reference set behind a read group set.

    Looked up once on first use and cached, so repeated calls are cheap and
    return the same answer.
    """

    def __init__(self, client, read_group_set_id: str, max_retries: int = 10):
        self.client = client
        self.read_group_set_id = read_group_set_id
        self.max_retries = max_retries
        self._lengths: Optional[Dict[str, int]] = None

    def _load(self) -> Dict[str, int]:
        if self._lengths is not None:
            return self._lengths

        read_group_set = call_with_retries(
            lambda: self.client.get_read_group_set(self.read_group_set_id),
            max_retries=self.max_retries,
        )
        reference_set_id = read_group_set.get("referenceSetId")

        lengths: Dict[str, int] = {}
        page_token = None
        while True:
            response = call_with_retries(
                lambda: self.client.search_references(reference_set_id, page_token),
                max_retries=self.max_retries,
            )
            for reference in response.get("references", []):
                lengths[reference["name"]] = int(reference["length"])
            page_token = response.get("nextPageToken")
            if not page_token:
                break

        logger.info(
            f"Loaded {len(lengths)} references for read group set {self.read_group_set_id}"
        )
        self._lengths = lengths
        return lengths

    def resolve(self, sequence_name: str) -> Optional[int]:
        return self._load().get(sequence_name)

    def sequences(self) -> List[Tuple[str, int]]:
        return list(self._load().items())
