"""GitHub GraphQL client for pull request retrieval.

Objective:
    Provide a thin wrapper around the single GitHub GraphQL query used by this
    project. This module centralizes HTTP request construction,
    authentication headers, and the mapping of HTTP/GraphQL failures onto
    :mod:`prism.errors`.

Responsibilities:
    - Load the stored token (and fail fast without it).
    - Issue one authenticated POST (via :mod:`requests`) returning both the
      review-requested search and the viewer's own open pull requests.
    - Hand the raw nodes to :class:`prism.classifier.PullRequestClassifier`.

High-level call tree:
    - Public API:
        - :meth:`GitHubClient.fetch_pull_requests` -> returns
          :class:`prism.models.PullRequestData`
    - Internal helpers:
        - :meth:`GitHubClient._make_request` (auth + error handling)

GitHub endpoint used:
    - ``POST https://api.github.com/graphql``

Error handling:
    - No token: :class:`prism.errors.AuthError`, without any request.
    - HTTP 401: :class:`prism.errors.AuthError` (token revoked or expired).
    - Other HTTP errors and transport failures:
      :class:`prism.errors.NetworkError`.
    - Undecodable body, or GraphQL errors without data:
      :class:`prism.errors.ProtocolError`.
    - No retries.
"""

import logging
from typing import Any, Optional

import requests

from .classifier import PullRequestClassifier
from .config import Settings
from .errors import AuthError, NetworkError, ProtocolError
from .models import PullRequestData
from .token_store import TokenStore

logger = logging.getLogger(__name__)

REVIEW_REQUESTED_SEARCH = "is:pr is:open review-requested:@me"

PULL_REQUESTS_QUERY = """
query PrismPullRequests($ownLimit: Int!, $searchLimit: Int!, $searchQuery: String!) {
  viewer {
    login
    pullRequests(first: $ownLimit, states: [OPEN], orderBy: {field: UPDATED_AT, direction: DESC}) {
      nodes {
        number
        title
        url
        isDraft
        repository {
          nameWithOwner
        }
        author {
          login
          avatarUrl
        }
        reviewRequests(first: 10) {
          totalCount
        }
        reviews(first: 10, states: [APPROVED, CHANGES_REQUESTED]) {
          nodes {
            state
          }
        }
      }
    }
  }
  search(query: $searchQuery, type: ISSUE, first: $searchLimit) {
    nodes {
      ... on PullRequest {
        number
        title
        url
        isDraft
        repository {
          nameWithOwner
        }
        author {
          login
          avatarUrl
        }
      }
    }
  }
}
"""


class GitHubClient:
    """
    Client for the GitHub GraphQL API.

    This class holds no token: it reads the token from
    :class:`prism.token_store.TokenStore` on every call so that a token stored
    by a concurrent device flow is picked up without a restart.

    Attributes:
        settings: Application settings.
        token_store: Token persistence.
        classifier: Pull request classifier.
    """

    GRAPHQL_URL = "https://api.github.com/graphql"
    USER_AGENT = "Prism-App"

    def __init__(
        self,
        settings: Settings,
        token_store: TokenStore,
        http: Optional[requests.Session] = None,
        classifier: Optional[PullRequestClassifier] = None,
    ) -> None:
        """
        Initialize the GitHub client.

        Args:
            settings: Application settings.
            token_store: Token persistence.
            http: HTTP session (a new ``requests.Session`` if None).
            classifier: Classifier (a new one if None).
        """
        self.settings = settings
        self.token_store = token_store
        self._http = http or requests.Session()
        self.classifier = classifier or PullRequestClassifier()

    def _make_request(self, token: str, query: str, variables: dict[str, Any]) -> dict:
        """Run a GraphQL query.

        This helper:
        - Adds the bearer token and the fixed User-Agent.
        - Applies the configured timeout.
        - Maps HTTP failures onto Prism errors.
        - Returns the ``data`` object of the GraphQL response.

        Args:
            token: GitHub access token.
            query: GraphQL document.
            variables: GraphQL variables.

        Returns:
            dict: The ``data`` object.

        Raises:
            AuthError: If GitHub rejects the token.
            NetworkError: On transport failure or a non-2xx status.
            ProtocolError: If the body is not a usable GraphQL response.
        """
        headers = {
            "Authorization": f"Bearer {token}",
            "User-Agent": self.USER_AGENT,
            "Accept": "application/json",
        }

        try:
            response = self._http.post(
                self.GRAPHQL_URL,
                json={"query": query, "variables": variables},
                headers=headers,
                timeout=self.settings.http_timeout,
            )
        except requests.RequestException as e:
            raise NetworkError(f"Failed to fetch pull requests: {e}") from e

        if response.status_code == 401:
            logger.warning("GitHub rejected the stored token (401)")
            raise AuthError("GitHub rejected the stored token; sign in again")

        if not response.ok:
            logger.error(f"GitHub API error: {response.status_code} - {response.text}")
            raise NetworkError(f"GitHub API error: HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise ProtocolError(f"Failed to parse GitHub response: {e}") from e

        if not isinstance(payload, dict):
            raise ProtocolError("GitHub response is not a JSON object")

        errors = payload.get("errors") or []
        data = payload.get("data")

        if errors:
            messages = "; ".join(
                str(err.get("message", err)) if isinstance(err, dict) else str(err)
                for err in errors
            )
            if not isinstance(data, dict):
                raise ProtocolError(f"GitHub GraphQL errors: {messages}")
            logger.warning("GitHub returned partial data with errors: %s", messages)

        if not isinstance(data, dict):
            raise ProtocolError("GitHub response has no data")

        return data

    def fetch_pull_requests(self) -> PullRequestData:
        """Fetch and classify the viewer's open pull requests.

        One round trip returns both result sets:
            - PRs where the viewer is a requested reviewer (search).
            - PRs authored by the viewer, with review state and the number
              of outstanding review requests.

        Returns:
            PullRequestData: Classified snapshot.

        Raises:
            AuthError: If no token is stored or GitHub rejects it.
            NetworkError: On transport failure or a non-2xx status.
            ProtocolError: If the response cannot be decoded.
        """
        token = self.token_store.load()
        if not token:
            raise AuthError("Not authenticated")

        variables = {
            "ownLimit": self.settings.own_pull_request_limit,
            "searchLimit": self.settings.review_search_limit,
            "searchQuery": REVIEW_REQUESTED_SEARCH,
        }

        logger.debug("Fetching pull requests from GitHub")
        data = self._make_request(token, PULL_REQUESTS_QUERY, variables)

        search_nodes = _nodes(data.get("search"))
        viewer = data.get("viewer") if isinstance(data.get("viewer"), dict) else {}
        own_nodes = _nodes(viewer.get("pullRequests"))

        result = self.classifier.classify(search_nodes, own_nodes)
        logger.info(
            "Fetched %s pull requests (%s need review)",
            result.total,
            len(result.needs_review),
        )
        return result


def _nodes(connection: Any) -> list:
    """Return ``connection["nodes"]`` or an empty list when absent."""
    if not isinstance(connection, dict):
        return []
    nodes = connection.get("nodes")
    return nodes if isinstance(nodes, list) else []
