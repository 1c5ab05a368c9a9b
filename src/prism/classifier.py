"""Pull request normalization and classification.

Objective:
    Convert the raw GraphQL nodes returned by
    :meth:`prism.github_client.GitHubClient.fetch_pull_requests` into a
    :class:`prism.models.PullRequestData` with four disjoint buckets.

Core strategy:
    1. Validate each node on its own into a
       :class:`prism.models.RawPullRequestNode`. Nodes missing a required
       field are logged and dropped; the rest of the batch is kept.
    2. Collapse duplicates by ``(repo, number)`` within one result set.
    3. Review-requested search results always go to ``needs_review``.
    4. The viewer's own pull requests go through a strict precedence:
       draft, then approved, then waiting for reviewers.

High-level call tree:
    - :class:`PullRequestClassifier`
        - :meth:`PullRequestClassifier.classify`
            - :func:`normalize_nodes`
            - :func:`categorize`

Operational notes:
    - "Has pending review requests" and "has neither approval nor review
      requests" both land in ``waiting_for_reviewers``.
    - The two result sets are not deduplicated against each other. A PR the
      viewer both authored and was asked to review shows up twice.
"""

import logging
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from .config import APPROVED_STATUS, PRCategory
from .models import PullRequest, PullRequestData, RawPullRequestNode

logger = logging.getLogger(__name__)


def normalize_nodes(nodes: Optional[Iterable[Any]]) -> list[tuple[RawPullRequestNode, PullRequest]]:
    """Validate raw GraphQL nodes one by one.

    Args:
        nodes: Raw ``nodes`` array (None is treated as empty).

    Returns:
        list[tuple[RawPullRequestNode, PullRequest]]: Valid nodes paired with
        their canonical record, in source order, without duplicates.
    """
    results: list[tuple[RawPullRequestNode, PullRequest]] = []
    seen: set[tuple[str, int]] = set()

    for index, item in enumerate(nodes or []):
        if not isinstance(item, dict):
            logger.warning(f"Skipping pull request node {index}: not an object")
            continue
        try:
            node = RawPullRequestNode.model_validate(item)
        except ValidationError as e:
            missing = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
            logger.warning(f"Skipping pull request node {index}: invalid fields ({missing})")
            continue

        pr = node.to_pull_request()
        if pr.key in seen:
            logger.debug("Skipping duplicate pull request %s#%s", pr.repo, pr.number)
            continue
        seen.add(pr.key)
        results.append((node, pr))

    return results


def categorize(node: RawPullRequestNode) -> PRCategory:
    """
    Decide the bucket of one of the viewer's own pull requests.

    Precedence:
        1. Draft PRs are never actionable, whatever their reviews say.
        2. Any APPROVED review makes the PR approved.
        3. Everything else waits for reviewers.

    Args:
        node: Validated pull request node.

    Returns:
        PRCategory: Target bucket.
    """
    if node.is_draft:
        return PRCategory.DRAFTS
    if node.has_approval:
        return PRCategory.APPROVED
    return PRCategory.WAITING_FOR_REVIEWERS


class PullRequestClassifier:
    """
    Partition fetched pull requests into buckets.

    The classifier is stateless; a single instance can be reused across
    fetches.
    """

    def classify(
        self,
        search_nodes: Optional[Iterable[Any]],
        own_nodes: Optional[Iterable[Any]],
    ) -> PullRequestData:
        """
        Build the classified snapshot.

        Args:
            search_nodes: Nodes of the review-requested search.
            own_nodes: Nodes of the viewer's own open pull requests.

        Returns:
            PullRequestData: Four disjoint buckets in source order.
        """
        data = PullRequestData()

        for _node, pr in normalize_nodes(search_nodes):
            data.needs_review.append(pr)

        for node, pr in normalize_nodes(own_nodes):
            category = categorize(node)
            if category == PRCategory.APPROVED:
                pr.status = APPROVED_STATUS
            data.bucket(category).append(pr)

        logger.debug(
            "Classified pull requests: %s",
            {category.value: len(data.bucket(category)) for category in PRCategory},
        )
        return data
