"""
Client for a Genomics v1 style reads API.

Only the calls needed to page through reads and to look up reference
lengths are implemented. Failures are classified into retriable (network,
throttling, server errors) and fatal (auth, bad request) errors; retrying
is left to the caller.
"""

import logging
from typing import Any, Dict, List, Optional

import requests

from .errors import FatalFetchError, RetriableFetchError
from .types import ApiFetchRequest, Read, ReadPage

logger = logging.getLogger(__name__)

GENOMICS_API_URL = "https://genomics.googleapis.com/v1"
DEFAULT_TIMEOUT_SECONDS = 60.0

RETRIABLE_STATUS_CODES = {408, 429}


def parse_read(alignment: Dict[str, Any]) -> Read:
    """Convert one JSON read record into a Read."""
    position = (alignment.get("alignment") or {}).get("position") or {}
    return Read(
        id=alignment.get("id"),
        sequence_name=position.get("referenceName", ""),
        # int64 fields arrive as JSON strings
        alignment_start=int(position.get("position", 0)),
        fragment_name=alignment.get("fragmentName", ""),
        read_number=int(alignment.get("readNumber", 0)),
    )


class GenomicsApiClient:
    """Thin wrapper around a requests session for the reads API."""

    def __init__(
        self,
        base_url: str = GENOMICS_API_URL,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def _call(self, method: str, path: str, body: Optional[dict] = None) -> dict:
        url = f"{self.base_url}/{path}"
        params = {"key": self.api_key} if self.api_key else None

        try:
            resp = self.session.request(
                method, url, json=body, params=params, timeout=self.timeout
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            raise RetriableFetchError(f"{method} {path} failed: {e}") from e

        status = resp.status_code
        if status in RETRIABLE_STATUS_CODES or status >= 500:
            raise RetriableFetchError(f"{method} {path} returned HTTP {status}")
        if status >= 400:
            raise FatalFetchError(
                f"{method} {path} returned HTTP {status}: {resp.text[:200]}"
            )

        try:
            return resp.json()
        except ValueError as e:
            # Truncated bodies happen on dropped connections
            raise RetriableFetchError(f"{method} {path} returned invalid JSON") from e

    def search_reads(
        self, request: ApiFetchRequest, page_token: Optional[str] = None
    ) -> ReadPage:
        """Fetch one page of reads overlapping the request's shard."""
        shard = request.shard
        body: Dict[str, Any] = {
            "readGroupSetIds": [request.read_group_set_id],
            "referenceName": shard.sequence_name,
            "start": str(shard.start),
        }
        if not shard.is_open_ended:
            body["end"] = str(shard.end)
        if request.page_size > 0:
            body["pageSize"] = request.page_size
        if page_token:
            body["pageToken"] = page_token

        response = self._call("POST", "reads/search", body)
        reads: List[Read] = [parse_read(a) for a in response.get("alignments", [])]
        return ReadPage(reads=reads, next_page_token=response.get("nextPageToken"))

    def get_read_group_set(self, read_group_set_id: str) -> dict:
        return self._call("GET", f"readgroupsets/{read_group_set_id}")

    def search_references(
        self, reference_set_id: str, page_token: Optional[str] = None
    ) -> dict:
        body: Dict[str, Any] = {"referenceSetId": reference_set_id}
        if page_token:
            body["pageToken"] = page_token
        return self._call("POST", "references/search", body)

    def close(self):
        self.session.close()

    def __enter__(self) -> "GenomicsApiClient":
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()
