"""Prism: open GitHub pull requests at a glance.

Objective:
    Provide a Python implementation of a small pull request dashboard:
    - Sign in to GitHub with the OAuth device flow (no redirect server).
    - Fetch the user's open pull requests and the ones awaiting their review
      with a single GraphQL query.
    - Classify them into needs review / approved / waiting for reviewers /
      drafts.

Key modules:
    - :mod:`prism.auth`:
        GitHub device flow (code issuance, polling, cancellation).
    - :mod:`prism.token_store`:
        Single-token persistence on local disk.
    - :mod:`prism.github_client`:
        GraphQL query and HTTP error mapping.
    - :mod:`prism.classifier`:
        Per-node validation and bucketing policy.
    - :mod:`prism.orchestrator`:
        Command surface used by host shells.
    - :mod:`prism.cli` / :mod:`prism.webapp`:
        User-facing entrypoints.
"""

__version__ = "0.1.0"
