# attribution.py -- Finding the last commit to touch each of several paths
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

"""Attribute paths to the commits that last changed them.

A tree listing shows, next to every entry, the last commit that touched
it. Walking history once per entry would cost O(entries x history), so
:func:`attribute` answers all of the entries in a single walk and stops as
soon as every one of them has been resolved.

Paths are described by patterns:

* ``b""`` matches every path (the whole tree);
* a pattern ending in ``/`` matches every path below that directory;
* anything else matches exactly one path.
"""

__all__ = [
    "AttributionResult",
    "attribute",
    "directory_pattern",
    "file_pattern",
    "pattern_matches",
    "tree_patterns",
]

import stat
import time
from collections.abc import Iterator, Sequence
from typing import TYPE_CHECKING, Callable, Optional, Protocol, Union, cast

from dulwich.diff_tree import TreeChange, tree_changes
from dulwich.errors import MissingCommitError
from dulwich.objects import Commit, Tree
from dulwich.walk import Walker

from . import log_utils
from .errors import AttributionCancelled, StoreError, UnresolvedAttribution

if TYPE_CHECKING:
    from dulwich.object_store import BaseObjectStore

logger = log_utils.getLogger(__name__)

PathPattern = Union[str, bytes]

ChangesFunc = Callable[
    ["BaseObjectStore", Optional[bytes], Optional[bytes]], Iterator[TreeChange]
]


class Cancellable(Protocol):
    """Anything with an ``is_set`` method, such as ``threading.Event``."""

    def is_set(self) -> bool: ...


def _to_bytes(path: PathPattern) -> bytes:
    if isinstance(path, str):
        return path.encode("utf-8", "surrogateescape")
    return path


def file_pattern(path: PathPattern) -> PathPattern:
    """Return the pattern matching exactly the file at path."""
    sep = "/" if isinstance(path, str) else b"/"
    return path.strip(sep)  # type: ignore[arg-type]


def directory_pattern(path: PathPattern) -> PathPattern:
    """Return the pattern matching everything below the directory at path.

    The root directory (an empty path or "/") yields the empty pattern.
    """
    sep = "/" if isinstance(path, str) else b"/"
    path = path.strip(sep)  # type: ignore[arg-type]
    if not path:
        return path
    return path + sep  # type: ignore[operator]


def pattern_matches(pattern: bytes, path: bytes) -> bool:
    """Check whether a changed path falls under a pattern."""
    if not pattern:
        return True
    if pattern.endswith(b"/"):
        return path.startswith(pattern)
    return path == pattern


def tree_patterns(dir_path: PathPattern, tree: Tree) -> list[bytes]:
    """Build the patterns for a tree listing.

    The first pattern covers the directory itself; it is followed by one
    pattern per entry of tree, in tree order. Subdirectories get directory
    patterns, everything else (files, symlinks, submodules) exact ones.

    Args:
      dir_path: Path of tree within the commit, "" for the root
      tree: The Tree object being listed
    Returns: List of byte patterns, one longer than the tree
    """
    prefix = cast(bytes, directory_pattern(_to_bytes(dir_path)))
    patterns = [prefix]
    for entry in tree.iteritems():
        assert entry.path is not None and entry.mode is not None
        if stat.S_ISDIR(entry.mode):
            patterns.append(prefix + entry.path + b"/")
        else:
            patterns.append(prefix + entry.path)
    return patterns


class AttributionResult(Sequence):
    """Commits found by :func:`attribute`, one per pattern.

    Indexing an unresolved slot raises UnresolvedAttribution; use
    :meth:`get` to receive None instead.

    Attributes:
      patterns: The patterns, in the order they were given
      commits_visited: Number of commits the walk looked at
      diffs_computed: Number of tree diffs the walk needed
    """

    def __init__(
        self,
        patterns: list[bytes],
        commits: list[Optional[Commit]],
        commits_visited: int = 0,
        diffs_computed: int = 0,
    ) -> None:
        self.patterns = patterns
        self._commits = commits
        self.commits_visited = commits_visited
        self.diffs_computed = diffs_computed

    def __len__(self) -> int:
        return len(self._commits)

    def __getitem__(self, index):  # type: ignore[override]
        if isinstance(index, slice):
            return [self[i] for i in range(*index.indices(len(self)))]
        commit = self._commits[index]
        if commit is None:
            raise UnresolvedAttribution(
                self.patterns[index].decode("utf-8", "replace")
            )
        return commit

    def get(self, index: int) -> Optional[Commit]:
        """Return the commit for a slot, or None if it is unresolved."""
        return self._commits[index]

    def unresolved(self) -> list[int]:
        """Return the indices of the patterns nothing was found for."""
        return [i for i, commit in enumerate(self._commits) if commit is None]

    def __repr__(self) -> str:
        ids = [c.id.decode("ascii") if c is not None else None for c in self._commits]
        return f"<{type(self).__name__} {ids!r}>"


def _iter_history(store: "BaseObjectStore", commit: Commit) -> Iterator[Commit]:
    """Lazily yield commit and its ancestors, each exactly once.

    Commits come out newest first, so descendants precede their ancestors
    unless committer clocks went backwards.
    """
    for entry in Walker(store, [commit.id]):
        yield entry.commit


def _changed_paths(changes: Iterator[TreeChange]) -> Iterator[bytes]:
    for change in changes:
        # Both sides count: a deletion touches the directories it leaves.
        for entry in (change.old, change.new):
            if entry is not None and entry.path is not None:
                yield entry.path


def attribute(
    store: "BaseObjectStore",
    commit: Commit,
    patterns: Sequence[PathPattern],
    deadline: Optional[float] = None,
    cancelled: Optional[Cancellable] = None,
    changes_func: ChangesFunc = tree_changes,
) -> AttributionResult:
    """Find the most recent commit touching each pattern.

    History reachable from commit is walked once. A commit touches a path
    if the path differs between the commit's tree and the tree of *any* of
    its parents; a root commit touches every path in its tree, and always
    resolves the empty pattern. The walk ends as soon as every pattern is
    resolved.

    Args:
      store: Object store to read commits and trees from
      commit: Commit to start walking from
      patterns: Path patterns, see the module docstring
      deadline: time.monotonic() value after which the walk is abandoned
      cancelled: Object whose is_set() abandons the walk when true
      changes_func: Function computing the changes between two trees
    Returns: An AttributionResult with one slot per pattern
    Raises:
      AttributionCancelled: if the deadline passed or cancelled was set
      StoreError: if a commit or tree could not be read; no partial
        result is returned
    """
    byte_patterns = [_to_bytes(p) for p in patterns]
    found: list[Optional[Commit]] = [None] * len(byte_patterns)
    open_indices = list(range(len(byte_patterns)))
    visited = 0
    diffs = 0

    def settle(c: Commit, path: bytes) -> None:
        for i in list(open_indices):
            if pattern_matches(byte_patterns[i], path):
                found[i] = c
                open_indices.remove(i)

    try:
        history = _iter_history(store, commit) if open_indices else iter(())
        for c in history:
            if deadline is not None and time.monotonic() >= deadline:
                raise AttributionCancelled(visited)
            if cancelled is not None and cancelled.is_set():
                raise AttributionCancelled(visited)
            visited += 1

            if c.parents:
                parent_trees = (store[p].tree for p in c.parents)
            else:
                parent_trees = iter([None])
                for i in list(open_indices):
                    if not byte_patterns[i]:
                        found[i] = c
                        open_indices.remove(i)

            for parent_tree in parent_trees:
                if not open_indices:
                    break
                diffs += 1
                for path in _changed_paths(changes_func(store, parent_tree, c.tree)):
                    settle(c, path)
                    if not open_indices:
                        break

            if not open_indices:
                break
    except (KeyError, OSError, MissingCommitError) as exc:
        raise StoreError(
            f"History walk from {commit.id.decode('ascii')} failed"
        ) from exc

    result = AttributionResult(byte_patterns, found, visited, diffs)
    logger.debug(
        "Attributed %d patterns from %s: %d commits visited, %d diffs, %d unresolved",
        len(byte_patterns),
        commit.id.decode("ascii"),
        visited,
        diffs,
        len(result.unresolved()),
    )
    return result
