# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Bareforge Contributors

"""Read-only resolution of branches, commits and files from bare repositories.

Repositories live in a single directory as ``<name>.git``.  Every public
method opens the repository fresh and closes it before returning; nothing is
cached between calls and no locks are taken, since every object read here is
content-addressed and immutable.
"""

from __future__ import annotations

import logging
import os
import posixpath
import re
import stat
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path

from dulwich.errors import NotGitRepository, NotTreeError
from dulwich.objects import S_ISGITLINK, Blob, Commit
from dulwich.object_store import tree_lookup_path
from dulwich.refs import check_ref_format
from dulwich.repo import Repo

from bareforge.services.errors import (
    BlobReadError,
    BranchNotFoundError,
    CommitNotFoundError,
    GitFileNotFoundError,
    RepositoryError,
    RepositoryNotFoundError,
)

logger = logging.getLogger(__name__)

REPO_SUFFIX = ".git"
BRANCH_PREFIX = b"refs/heads/"

# Shortest abbreviated object id accepted, same floor as ``git rev-parse``.
_MIN_ABBREV = 4
_HEX_RE = re.compile(r"^[0-9a-f]+$")


@dataclass(frozen=True, slots=True)
class FileEntry:
    """A file of a commit snapshot."""

    path: str  # relative to the repository root, "/" separated
    data: bytes


def _decode_path(raw: bytes) -> str:
    return raw.decode("utf-8", "surrogateescape")


def _encode_path(path: str) -> bytes:
    return path.encode("utf-8", "surrogateescape")


def normalize_dir(path: str) -> str:
    """Clean a directory path; the repository root becomes ``""``."""
    stripped = path.strip("/")
    if not stripped:
        return ""
    cleaned = posixpath.normpath(stripped)
    return "" if cleaned == "." else cleaned


def match_glob(pattern: str, path: str) -> bool:
    """Shell-style match where ``*`` never crosses a ``/`` separator."""
    pattern_parts = pattern.split("/")
    path_parts = path.split("/")
    if len(pattern_parts) != len(path_parts):
        return False
    return all(
        fnmatchcase(part, pat) for part, pat in zip(path_parts, pattern_parts)
    )


class GitResolver:
    """Resolve forge data directly from the object storage of bare repositories.

    Parameters
    ----------
    repo_dir:
        Directory holding one ``<name>.git`` bare repository per project.
    """

    def __init__(self, repo_dir: str | os.PathLike[str]) -> None:
        self._repo_dir = Path(os.path.abspath(repo_dir))

    @property
    def repo_dir(self) -> Path:
        return self._repo_dir

    # ------------------------------------------------------------------
    # Repositories
    # ------------------------------------------------------------------

    def repo_path(self, name: str) -> Path:
        """Return ``<repo_dir>/<name>.git``, refusing names that leave the root."""
        path = Path(os.path.normpath(self._repo_dir / f"{name}{REPO_SUFFIX}"))
        if not name or self._repo_dir not in path.parents:
            logger.error("Rejected repo name %r outside %s", name, self._repo_dir)
            raise RepositoryNotFoundError(
                name, str(path), "name escapes the repository root"
            )
        return path

    def open_repository(self, name: str) -> Repo:
        """Open a bare repository by name.

        The caller owns the returned handle and must ``close()`` it;
        ``repository()`` does that automatically.
        """
        path = self.repo_path(name)
        logger.debug("Opening git repo %s at %s", name, path)
        if not path.is_dir():
            logger.error("Git repo %s does not exist at %s", name, path)
            raise RepositoryNotFoundError(name, str(path), "no such directory")
        try:
            return Repo(str(path))
        except NotGitRepository as exc:
            logger.error("Path %s is not a git repository", path)
            raise RepositoryNotFoundError(
                name, str(path), "not a git repository"
            ) from exc
        except OSError as exc:
            logger.error("Could not open git repo %s: %s", path, exc)
            raise RepositoryError(
                f"could not open repo {name!r} at {str(path)!r}: {exc}"
            ) from exc

    @contextmanager
    def repository(self, name: str) -> Iterator[Repo]:
        repo = self.open_repository(name)
        try:
            yield repo
        finally:
            repo.close()

    def validate_repository(self, name: str) -> None:
        """Raise unless ``name`` opens as a bare repository."""
        with self.repository(name):
            logger.debug("Validated git repo %s", name)

    def list_repositories(self, page: int = 1) -> list[str]:
        """Return the names of all repositories in the root directory.

        Only a single page is ever produced: page 1 (or lower) holds every
        repository and any later page is empty.  A repository that fails to
        open fails the whole listing.
        """
        if page > 1:
            return []
        try:
            entries = sorted(os.listdir(self._repo_dir))
        except OSError as exc:
            logger.error("Could not read repo dir %s: %s", self._repo_dir, exc)
            raise RepositoryError(
                f"could not read repo dir {str(self._repo_dir)!r}: {exc}"
            ) from exc

        names: list[str] = []
        for entry in entries:
            if not entry.endswith(REPO_SUFFIX):
                continue
            name = entry[: -len(REPO_SUFFIX)]
            self.validate_repository(name)
            names.append(name)
        logger.debug("Found %d repositories in %s", len(names), self._repo_dir)
        return names

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    def resolve_branches(self, name: str, page: int = 1) -> list[str]:
        """List local branch names, sorted. Same single-page rule as repositories."""
        if page > 1:
            return []
        with self.repository(name) as repo:
            refs = repo.refs.keys(base=BRANCH_PREFIX)
        return sorted(_decode_path(ref) for ref in refs)

    def resolve_branch_head(self, name: str, branch: str) -> str:
        """Return the commit sha the branch points at."""
        ref = BRANCH_PREFIX + _encode_path(branch)
        if not branch or not check_ref_format(ref):
            logger.error("Invalid branch name %r for repo %s", branch, name)
            raise BranchNotFoundError(name, branch)
        with self.repository(name) as repo:
            try:
                sha = repo.refs[ref]
            except KeyError as exc:
                logger.error("Branch %s not found in repo %s", branch, name)
                raise BranchNotFoundError(name, branch) from exc
        return sha.decode("ascii")

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def read_file(self, name: str, commit: str, path: str) -> bytes:
        """Return the bytes of ``path`` as stored in ``commit``."""
        with self.repository(name) as repo:
            snapshot = self._resolve_commit(repo, name, commit)
            return self._file_contents(repo, name, snapshot, commit, path)

    def list_directory(self, name: str, commit: str, path: str) -> list[FileEntry]:
        """Return the files directly inside ``path`` at ``commit``, with content.

        The directory is turned into the glob ``<path>/*`` and matched against
        the full path of every file in the commit, so files in nested
        directories never match.
        """
        directory = normalize_dir(path)
        pattern = f"{directory}/*" if directory else "*"
        with self.repository(name) as repo:
            snapshot = self._resolve_commit(repo, name, commit)
            try:
                matched = [
                    file_path
                    for file_path in self._walk_files(repo, snapshot.tree)
                    if match_glob(pattern, file_path)
                ]
            except KeyError as exc:
                logger.error("Could not iterate files of %s in repo %s", commit, name)
                raise RepositoryError(
                    f"problem while iterating over files of {commit!r} in repo {name!r}"
                ) from exc
            entries = [
                FileEntry(
                    path=file_path,
                    data=self._file_contents(repo, name, snapshot, commit, file_path),
                )
                for file_path in matched
            ]
        logger.debug(
            "Matched %d file(s) for %s in %s@%s", len(entries), pattern, name, commit
        )
        return entries

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _resolve_commit(self, repo: Repo, name: str, commit: str) -> Commit:
        """Resolve a full or abbreviated hex id to a commit object."""
        ref = commit.strip().lower()
        if len(ref) < _MIN_ABBREV or len(ref) > 40 or not _HEX_RE.match(ref):
            logger.error("Invalid commit id %r for repo %s", commit, name)
            raise CommitNotFoundError(name, commit, "not a hex object id")

        sha = ref.encode("ascii")
        if len(sha) < 40:
            matches = [s for s in repo.object_store if s.startswith(sha)]
            commits = [s for s in matches if isinstance(repo.object_store[s], Commit)]
            if len(commits) != 1:
                reason = "ambiguous object id" if commits else "no such object"
                logger.error("Could not expand commit %s in repo %s: %s", commit, name, reason)
                raise CommitNotFoundError(name, commit, reason)
            sha = commits[0]

        try:
            obj = repo.object_store[sha]
        except KeyError as exc:
            logger.error("Commit %s not found in repo %s", commit, name)
            raise CommitNotFoundError(name, commit, "no such object") from exc
        if not isinstance(obj, Commit):
            logger.error("Object %s in repo %s is not a commit", commit, name)
            raise CommitNotFoundError(
                name, commit, f"object is a {obj.type_name.decode('ascii')}"
            )
        return obj

    def _file_contents(
        self, repo: Repo, name: str, snapshot: Commit, commit: str, path: str
    ) -> bytes:
        clean = path.strip("/")
        try:
            mode, sha = tree_lookup_path(
                repo.object_store.__getitem__, snapshot.tree, _encode_path(clean)
            )
        except (KeyError, NotTreeError) as exc:
            logger.error("File %s not found at %s in repo %s", path, commit, name)
            raise GitFileNotFoundError(name, commit, path, "no such path") from exc
        if stat.S_ISDIR(mode):
            raise GitFileNotFoundError(name, commit, path, "path is a directory")
        if S_ISGITLINK(mode):
            raise GitFileNotFoundError(name, commit, path, "path is a submodule")

        try:
            blob = repo.object_store[sha]
        except KeyError as exc:
            logger.error("Blob %s for %s missing in repo %s", sha, path, name)
            raise BlobReadError(name, commit, path) from exc
        if not isinstance(blob, Blob):
            logger.error("Object %s for %s in repo %s is not a blob", sha, path, name)
            raise BlobReadError(name, commit, path)
        return blob.as_raw_string()

    def _walk_files(self, repo: Repo, tree_sha: bytes, prefix: str = "") -> Iterator[str]:
        """Yield the path of every file in a tree, depth first, in tree order."""
        tree = repo.object_store[tree_sha]
        for entry in tree.items():
            entry_path = _decode_path(entry.path)
            full_path = f"{prefix}/{entry_path}" if prefix else entry_path
            if stat.S_ISDIR(entry.mode):
                yield from self._walk_files(repo, entry.sha, full_path)
            elif S_ISGITLINK(entry.mode):
                continue
            else:
                yield full_path
