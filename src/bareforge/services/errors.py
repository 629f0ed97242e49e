# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Bareforge Contributors

"""Exceptions raised by the forge services."""

from __future__ import annotations


class ForgeError(Exception):
    """Base exception for forge operations."""


class RepositoryError(ForgeError):
    """Raised when the repository root itself cannot be read."""


# ---------------------------------------------------------------------------
# Not found
# ---------------------------------------------------------------------------


class NotFoundError(ForgeError):
    """A repository, commit, branch or file does not exist."""


class RepositoryNotFoundError(NotFoundError):
    def __init__(self, name: str, path: str, reason: str = "") -> None:
        message = f"could not open repo {name!r} at {path!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.name = name
        self.path = path


class CommitNotFoundError(NotFoundError):
    def __init__(self, repo: str, commit: str, reason: str = "") -> None:
        message = f"could not get commit {commit!r} in repo {repo!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.repo = repo
        self.commit = commit


class BranchNotFoundError(NotFoundError):
    def __init__(self, repo: str, branch: str) -> None:
        super().__init__(
            f"could not resolve branch reference {branch!r} in repo {repo!r}"
        )
        self.repo = repo
        self.branch = branch


class GitFileNotFoundError(NotFoundError):
    def __init__(self, repo: str, commit: str, path: str, reason: str = "") -> None:
        message = f"could not get file {path!r} at {commit!r} in repo {repo!r}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.repo = repo
        self.commit = commit
        self.path = path


class BlobReadError(ForgeError):
    """The tree names a blob that cannot be loaded from the object store."""

    def __init__(self, repo: str, commit: str, path: str) -> None:
        super().__init__(
            f"could not get file contents from {path!r} at {commit!r} in repo {repo!r}"
        )
        self.repo = repo
        self.commit = commit
        self.path = path


# ---------------------------------------------------------------------------
# OIDC upstream
# ---------------------------------------------------------------------------


class UpstreamAuthError(ForgeError):
    """An OIDC round trip failed. ``stage`` names the failing step."""

    stage = "oidc"


class ProviderDiscoveryError(UpstreamAuthError):
    stage = "discovery"


class TokenExchangeError(UpstreamAuthError):
    stage = "exchange"


class UserInfoError(UpstreamAuthError):
    stage = "userinfo"


# ---------------------------------------------------------------------------
# Hooks
# ---------------------------------------------------------------------------


class UnsupportedEventError(ForgeError):
    """Signal that an incoming event is ignored on purpose.

    Callers must treat this as a skip, not as a failure.
    """

    kind = "ignore"

    def __init__(self, event: str, reason: str) -> None:
        super().__init__(f"ignoring {event} events: {reason}")
        self.event = event
        self.reason = reason
