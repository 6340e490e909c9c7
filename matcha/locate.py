# locate.py -- Mapping request paths to repositories on disk
# Copyright (C) 2026 The matcha authors
#
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later
# matcha is dual-licensed under the Apache License, Version 2.0 and the GNU
# General Public License as published by the Free Software Foundation; version 2.0
# or (at your option) any later version. You can redistribute it and/or
# modify it under the terms of either of these two licenses.
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# You should have received a copy of the licenses; if not, see
# <http://www.gnu.org/licenses/> for a copy of the GNU General Public License
# and <http://www.apache.org/licenses/LICENSE-2.0> for a copy of the Apache
# License, Version 2.0.
#

"""Locate the repository that serves a request path.

Repositories live somewhere below a root directory, possibly several
directories deep. A request path such as ``/group/proj/tree/master/src`` is
resolved by probing ``root``, ``root/group``, ``root/group/proj``, ... in
turn; the first of these that is a git repository owns the request.
"""

__all__ = [
    "Location",
    "RepositoryCache",
    "RepositoryLocator",
    "locate",
    "split_request_path",
]

import os
import stat
import threading
from collections import OrderedDict
from typing import Callable, NamedTuple, Optional

from dulwich.errors import NotGitRepository
from dulwich.repo import Repo, UnsupportedExtension, UnsupportedVersion

from . import log_utils
from .errors import NotFoundError, StoreError

logger = log_utils.getLogger(__name__)


class Location(NamedTuple):
    """Where a request path landed.

    Attributes:
      repo: The opened repository
      name: Name of the repository directory
      mount_prefix: Request path prefix of the repository, "" for the root
      in_repo_path: Remainder of the request path, without leading slash
    """

    repo: Repo
    name: str
    mount_prefix: str
    in_repo_path: str


def split_request_path(request_path: str) -> list[str]:
    """Split a request path into its segments.

    Empty and "." segments are dropped.

    Raises:
      NotFoundError: if the path tries to leave the root directory
    """
    segments = []
    for segment in request_path.split("/"):
        if segment in ("", "."):
            continue
        if segment == ".." or "\x00" in segment or os.sep in segment:
            raise NotFoundError("repository", request_path)
        segments.append(segment)
    return segments


def _open_repo(path: str) -> Repo:
    logger.debug("Opening repository at %s", path)
    return Repo(path)


class RepositoryCache:
    """Process-wide cache of opened repositories.

    Entries are keyed by the real path of the repository and remember the
    identity (device and inode) of the directory they were opened from. An
    entry is only handed out again while the directory still has that
    identity; otherwise it is closed and the repository reopened.
    """

    def __init__(
        self,
        max_entries: int = 64,
        open_repo: Callable[[str], Repo] = _open_repo,
    ) -> None:
        """Initialize a RepositoryCache.

        Args:
            max_entries: Number of repositories to keep open
            open_repo: Function opening the repository at a path
        """
        self.max_entries = max_entries
        self._open_repo = open_repo
        self._lock = threading.Lock()
        self._entries: OrderedDict[str, tuple[tuple[int, int], Repo]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def open(self, path: str, st: os.stat_result) -> Repo:
        """Return the repository at path, opening it if necessary.

        Args:
          path: Path of the candidate directory
          st: Result of os.stat() on path
        Raises:
          NotGitRepository: if path is not a repository
        """
        key = os.path.realpath(path)
        identity = (st.st_dev, st.st_ino)
        with self._lock:
            cached = self._entries.get(key)
            if cached is not None:
                cached_identity, repo = cached
                if cached_identity == identity:
                    self._entries.move_to_end(key)
                    logger.debug("Reusing cached repository %s", key)
                    return repo
                logger.debug("Repository %s was replaced, reopening", key)
                del self._entries[key]
                repo.close()
            repo = self._open_repo(path)
            self._entries[key] = (identity, repo)
            while len(self._entries) > self.max_entries:
                old_key, (_, old_repo) = self._entries.popitem(last=False)
                logger.debug("Evicting cached repository %s", old_key)
                old_repo.close()
            return repo

    def discard(self, path: str) -> None:
        """Close and forget the repositories cached at or below path."""
        key = os.path.realpath(path)
        prefix = os.path.join(key, "")
        with self._lock:
            stale = [k for k in self._entries if k == key or k.startswith(prefix)]
            repos = [self._entries.pop(k)[1] for k in stale]
        for repo in repos:
            logger.debug("Discarding cached repository at %s", path)
            repo.close()

    def clear(self) -> None:
        """Close all cached repositories."""
        with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()
        for _, repo in entries:
            repo.close()


class RepositoryLocator:
    """Find repositories below a root directory.

    Attributes:
      root_dir: Absolute path of the directory holding the repositories
      cache: Optional RepositoryCache; without one, every call opens a new
        Repo that the caller is responsible for closing
    """

    def __init__(self, root_dir: str, cache: Optional[RepositoryCache] = None) -> None:
        self.root_dir = os.path.abspath(root_dir)
        self.cache = cache

    def _open(self, path: str, st: os.stat_result) -> Repo:
        if self.cache is not None:
            return self.cache.open(path, st)
        return _open_repo(path)

    def _forget(self, path: str) -> None:
        if self.cache is not None:
            self.cache.discard(path)

    def locate(self, request_path: str) -> Location:
        """Find the repository owning request_path.

        The outermost repository wins: once a prefix of the request path is
        a repository, deeper repositories nested inside it are never
        considered.

        Args:
          request_path: Slash-separated request path
        Returns: A Location
        Raises:
          NotFoundError: if no prefix of the path is a repository
          StoreError: if probing a candidate directory failed
        """
        segments = split_request_path(request_path)
        candidate = self.root_dir
        for depth in range(len(segments) + 1):
            if depth:
                candidate = os.path.join(candidate, segments[depth - 1])
            try:
                st = os.stat(candidate)
            except (FileNotFoundError, NotADirectoryError):
                # Nothing deeper can exist either; drop what was cached there.
                self._forget(candidate)
                break
            except OSError as exc:
                raise StoreError(f"Unable to stat {candidate}") from exc
            if not stat.S_ISDIR(st.st_mode):
                self._forget(candidate)
                break
            try:
                repo = self._open(candidate, st)
            except NotGitRepository:
                continue
            except (OSError, UnsupportedVersion, UnsupportedExtension) as exc:
                raise StoreError(f"Unable to open repository at {candidate}") from exc
            matched = segments[:depth]
            location = Location(
                repo=repo,
                name=os.path.basename(candidate),
                mount_prefix="".join("/" + s for s in matched),
                in_repo_path="/".join(segments[depth:]),
            )
            logger.debug(
                "Located %s in repository %s (mounted at %r)",
                request_path,
                candidate,
                location.mount_prefix,
            )
            return location
        raise NotFoundError("repository", request_path)


def locate(
    request_path: str, root_dir: str, cache: Optional[RepositoryCache] = None
) -> Location:
    """Find the repository below root_dir that owns request_path.

    See RepositoryLocator.locate.
    """
    return RepositoryLocator(root_dir, cache=cache).locate(request_path)
