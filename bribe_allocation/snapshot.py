"""Vote-hub client for Snapshot-style GraphQL endpoints.

Supplies the choices and votes the allocation engine consumes. Votes are
fetched page by page with ``first``/``skip`` until a short page arrives.
"""

import logging
import time
from typing import Any

import requests

from bribe_allocation.exceptions import DataUnavailable

logger = logging.getLogger(__name__)

GRAPHQL_ENDPOINT = "https://hub.snapshot.org/graphql"
PAGE_SIZE = 1000

PROPOSAL_QUERY = """
query Proposal($id: String!) {
  proposal(id: $id) {
    id
    title
    choices
    start
    end
    snapshot
    state
    scores_total
    space { id name }
  }
}
"""

VOTES_QUERY = """
query Votes($proposal: String!, $first: Int!, $skip: Int!) {
  votes(
    first: $first
    skip: $skip
    where: { proposal: $proposal }
    orderBy: "created"
    orderDirection: desc
  ) {
    id
    voter
    vp
    created
    choice
  }
}
"""


class SnapshotClient:
    """Fetch proposals and votes from a GraphQL vote hub.

    Parameters
    ----------
    endpoint : str
        GraphQL endpoint URL.
    page_size : int
        Votes requested per page.
    page_delay : float
        Seconds to sleep between pages, to stay under rate limits.
    timeout : float
        Per-request timeout in seconds.
    session : requests.Session, optional
        Session used for all requests.
    """

    def __init__(
        self,
        endpoint: str = GRAPHQL_ENDPOINT,
        page_size: int = PAGE_SIZE,
        page_delay: float = 0.0,
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        if page_size < 1:
            raise ValueError("page_size must be positive.")
        self.endpoint = endpoint
        self.page_size = page_size
        self.page_delay = page_delay
        self.timeout = timeout
        self._session = session or requests.Session()

    def _query(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self._session.post(
                self.endpoint,
                json={"query": query, "variables": variables},
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            raise DataUnavailable(f"Vote hub request failed: {exc}") from exc
        if payload.get("errors"):
            raise DataUnavailable(f"Vote hub returned errors: {payload['errors']}")
        data = payload.get("data")
        if not isinstance(data, dict):
            raise DataUnavailable("Vote hub response carries no data.")
        return data

    def fetch_proposal(self, proposal_id: str) -> dict[str, Any]:
        """Return the proposal metadata.

        Raises
        ------
        DataUnavailable
            If the proposal does not exist or the request fails.
        """
        proposal = self._query(PROPOSAL_QUERY, {"id": proposal_id}).get("proposal")
        if not proposal:
            raise DataUnavailable(f"Proposal {proposal_id} not found.")
        return proposal

    def fetch_choices(self, proposal_id: str) -> list[str]:
        """Return the ordered choice labels; the first label is choice ``"1"``."""
        choices = self.fetch_proposal(proposal_id).get("choices")
        if not choices:
            raise DataUnavailable(f"Proposal {proposal_id} has no choices.")
        return list(choices)

    def fetch_votes(self, proposal_id: str) -> list[dict[str, Any]]:
        """Return every vote of the proposal, newest first.

        Raises
        ------
        DataUnavailable
            If the proposal has no votes or a page is malformed.
        """
        votes: list[dict[str, Any]] = []
        page = 0
        while True:
            data = self._query(
                VOTES_QUERY,
                {"proposal": proposal_id, "first": self.page_size, "skip": page * self.page_size},
            )
            batch = data.get("votes")
            if not isinstance(batch, list):
                raise DataUnavailable(f"Malformed votes page {page} for proposal {proposal_id}.")
            votes.extend(batch)
            logger.debug("Fetched page %d: %d vote(s)", page, len(batch))
            if len(batch) < self.page_size:
                break
            page += 1
            if self.page_delay:
                time.sleep(self.page_delay)
        if not votes:
            raise DataUnavailable(f"Proposal {proposal_id} has no votes.")
        logger.info("Fetched %d vote(s) for proposal %s", len(votes), proposal_id)
        return votes

    def fetch_event(self, proposal_id: str, reflection_proposal_id: str | None = None) -> dict[str, Any]:
        """Assemble the event consumed by :class:`~bribe_allocation.adapter.BribeAllocateComponent`."""
        event: dict[str, Any] = {
            "choices": self.fetch_choices(proposal_id),
            "votes": self.fetch_votes(proposal_id),
        }
        if reflection_proposal_id is not None:
            event["reflection"] = {
                "choices": self.fetch_choices(reflection_proposal_id),
                "votes": self.fetch_votes(reflection_proposal_id),
            }
        return event
