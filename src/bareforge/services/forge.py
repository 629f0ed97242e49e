# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Bareforge Contributors

"""Forge contract and its local bare-repository implementation.

The host orchestration server talks to a forge only through the ``Forge``
protocol.  ``LocalForge`` answers repository questions from the
``GitResolver`` and login questions from the ``OIDCIdentityBridge``.  A forge
of bare repositories has no remote UI, webhooks, pull requests or teams, so
the matching operations are fixed values documented on each method.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Protocol, TypeVar

from bareforge.config import FORGE_NAME, Settings, get_settings
from bareforge.schemas.forge import (
    Commit,
    FileMeta,
    ListOptions,
    Netrc,
    OAuthRequest,
    Org,
    OrgPerm,
    PullRequest,
    Repo,
    Team,
    User,
)
from bareforge.services.errors import UnsupportedEventError
from bareforge.services.git_resolver import GitResolver
from bareforge.services.identity import OIDCIdentityBridge

logger = logging.getLogger(__name__)

HOOKS_UNSUPPORTED = "hooks unsupported"
NETRC_TYPE = "addon"

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Protocol (abstract interface)
# ---------------------------------------------------------------------------


class Forge(Protocol):
    """Operations a host orchestration server needs from a code forge."""

    def name(self) -> str:
        """Short driver name."""
        ...

    def url(self) -> str:
        """Root URL of the forge."""
        ...

    # --- Users ---

    async def login(self, request: OAuthRequest) -> tuple[User | None, str]:
        """Return the user (once authorized) and the URL to redirect to."""
        ...

    async def auth(self, token: str) -> str:
        """Return the login owning ``token``."""
        ...

    async def teams(self, user: User | None, options: ListOptions) -> list[Team]:
        ...

    # --- Repositories ---

    async def repo(
        self, user: User | None, remote_id: str, owner: str, name: str
    ) -> Repo:
        """Fetch a repository, by remote id when given, else by name."""
        ...

    async def repos(self, user: User | None, options: ListOptions) -> list[Repo]:
        ...

    async def file(self, user: User | None, repo: Repo, commit: str, path: str) -> bytes:
        ...

    async def dir(
        self, user: User | None, repo: Repo, commit: str, path: str
    ) -> list[FileMeta]:
        ...

    async def status(self, user: User | None, repo: Repo, commit: str) -> None:
        """Report a pipeline status for a commit."""
        ...

    def netrc(self, user: User, repo: Repo) -> Netrc:
        """Credentials used to clone ``repo``."""
        ...

    async def activate(self, user: User | None, repo: Repo, link: str) -> None:
        ...

    async def deactivate(self, user: User | None, repo: Repo, link: str) -> None:
        ...

    async def branches(
        self, user: User | None, repo: Repo, options: ListOptions
    ) -> list[str]:
        ...

    async def branch_head(self, user: User | None, repo: Repo, branch: str) -> Commit:
        ...

    async def pull_requests(
        self, user: User | None, repo: Repo, options: ListOptions
    ) -> list[PullRequest]:
        ...

    async def hook(self, headers: dict[str, str], body: bytes) -> tuple[Repo, Any]:
        """Parse an incoming webhook into a repository and pipeline."""
        ...

    # --- Organizations ---

    async def org_membership(self, user: User | None, org: str) -> OrgPerm:
        ...

    async def org(self, user: User | None, org: str) -> Org:
        ...


# ---------------------------------------------------------------------------
# Implementation
# ---------------------------------------------------------------------------


class LocalForge:
    """``Forge`` implementation backed by a directory of bare repositories.

    Parameters
    ----------
    base_url:
        Public URL used to build forge and clone URLs.
    resolver:
        Reads the bare repositories.
    identity:
        Authenticates users against the OIDC provider.
    """

    def __init__(
        self,
        base_url: str,
        resolver: GitResolver,
        identity: OIDCIdentityBridge,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._resolver = resolver
        self._identity = identity

    @classmethod
    def from_settings(cls, settings: Settings) -> LocalForge:
        return cls(
            base_url=settings.url,
            resolver=GitResolver(settings.repos),
            identity=OIDCIdentityBridge(
                client_id=settings.client_id,
                client_secret=settings.client_secret,
                provider_url=settings.provider,
                redirect_url=settings.redirect,
                timeout=settings.oidc_timeout,
            ),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _repo_url(self, name: str) -> str:
        return f"{self._base_url}/{name}"

    def _clone_url(self, name: str) -> str:
        return f"{self._repo_url(name)}.git"

    async def _off_loop(self, func: Callable[..., T], *args: Any) -> T:
        """Run a blocking repository read in the default executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    def _to_repo(self, name: str) -> Repo:
        repo = Repo(
            forge_remote_id=name,
            owner=self.name(),
            name=name,
            full_name=name,
            forge_url=self._repo_url(name),
            clone_url=self._clone_url(name),
        )
        logger.debug("Projected repo %s to %s", name, repo.forge_url)
        return repo

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def name(self) -> str:
        return FORGE_NAME

    def url(self) -> str:
        return self._base_url

    async def login(self, request: OAuthRequest) -> tuple[User | None, str]:
        logger.info("Login (code present: %s)", bool(request.code))
        result = await self._identity.begin_or_complete_login(request)
        if result.identity is None:
            return None, result.redirect_url
        identity = result.identity
        user = User(
            forge_remote_id=identity.login,
            login=identity.login,
            email=identity.email,
            avatar=identity.avatar,
            access_token=identity.access_token,
            refresh_token=identity.refresh_token,
            expiry=identity.expiry,
        )
        return user, result.redirect_url

    async def auth(self, token: str) -> str:
        logger.info("Auth")
        return await self._identity.verify_token(token)

    async def teams(self, user: User | None, options: ListOptions) -> list[Team]:
        """Always empty: bare repositories have no teams."""
        logger.info("Teams")
        return []

    # ------------------------------------------------------------------
    # Repositories
    # ------------------------------------------------------------------

    async def repo(
        self, user: User | None, remote_id: str, owner: str, name: str
    ) -> Repo:
        logger.info("Repo remote_id=%s name=%s", remote_id, name)
        if remote_id:
            name = remote_id
        await self._off_loop(self._resolver.validate_repository, name)
        return self._to_repo(name)

    async def repos(self, user: User | None, options: ListOptions) -> list[Repo]:
        logger.info("Repos page=%d", options.page)
        names = await self._off_loop(self._resolver.list_repositories, options.page)
        return [self._to_repo(name) for name in names]

    async def file(self, user: User | None, repo: Repo, commit: str, path: str) -> bytes:
        logger.info("File %s@%s:%s", repo.name, commit, path)
        return await self._off_loop(self._resolver.read_file, repo.name, commit, path)

    async def dir(
        self, user: User | None, repo: Repo, commit: str, path: str
    ) -> list[FileMeta]:
        logger.info("Dir %s@%s:%s", repo.name, commit, path)
        entries = await self._off_loop(
            self._resolver.list_directory, repo.name, commit, path
        )
        return [FileMeta(name=entry.path, data=entry.data) for entry in entries]

    async def status(self, user: User | None, repo: Repo, commit: str) -> None:
        """No-op: there is no forge UI to show commit statuses on."""
        logger.info("Status %s@%s", repo.name, commit)

    def netrc(self, user: User, repo: Repo) -> Netrc:
        """Clone credentials: the user's remote id with an empty password."""
        logger.info("Netrc %s", repo.name)
        return Netrc(
            machine=self.url(),
            login=user.forge_remote_id,
            password="",
            type=NETRC_TYPE,
        )

    async def activate(self, user: User | None, repo: Repo, link: str) -> None:
        """No-op: no post-commit hook can be installed on a bare repository."""
        logger.info("Activate %s", repo.name)

    async def deactivate(self, user: User | None, repo: Repo, link: str) -> None:
        """No-op: mirrors ``activate``."""
        logger.info("Deactivate %s", repo.name)

    async def branches(
        self, user: User | None, repo: Repo, options: ListOptions
    ) -> list[str]:
        logger.info("Branches %s page=%d", repo.name, options.page)
        return await self._off_loop(
            self._resolver.resolve_branches, repo.name, options.page
        )

    async def branch_head(self, user: User | None, repo: Repo, branch: str) -> Commit:
        logger.info("BranchHead %s:%s", repo.name, branch)
        sha = await self._off_loop(self._resolver.resolve_branch_head, repo.name, branch)
        return Commit(sha=sha, forge_url=self._repo_url(repo.name))

    async def pull_requests(
        self, user: User | None, repo: Repo, options: ListOptions
    ) -> list[PullRequest]:
        """Always empty: bare repositories have no pull requests."""
        logger.info("PullRequests %s", repo.name)
        return []

    async def hook(self, headers: dict[str, str], body: bytes) -> tuple[Repo, Any]:
        """Never parses anything: commits only arrive by writing to the repositories.

        Always raises ``UnsupportedEventError`` so the host skips the event
        instead of treating it as a failure.
        """
        logger.info("Hook")
        raise UnsupportedEventError(event="all", reason=HOOKS_UNSUPPORTED)

    # ------------------------------------------------------------------
    # Organizations
    # ------------------------------------------------------------------

    async def org_membership(self, user: User | None, org: str) -> OrgPerm:
        """Every user is member and admin of every organization."""
        logger.info("OrgMembership %s", org)
        return OrgPerm(member=True, admin=True)

    async def org(self, user: User | None, org: str) -> Org:
        """The single synthetic organization, named after the forge."""
        logger.info("Org %s", org)
        return Org(name=self.name(), is_user=True)


def get_forge() -> LocalForge:
    """FastAPI dependency: a forge built from the current settings."""
    return LocalForge.from_settings(get_settings())
