# revision.py -- Resolving revision strings to commits
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

"""Revision resolution.

A revision is whatever a user typed in the URL: a full commit id, a branch
name or a tag name. :func:`resolve_revision` tries these interpretations in
a fixed order (see :data:`STRATEGIES`) and returns the first commit found.
"""

__all__ = [
    "STRATEGIES",
    "BranchRef",
    "DirectHash",
    "RevisionStrategy",
    "TagInfo",
    "TagRef",
    "branch_heads",
    "is_hex_object_id",
    "list_branches",
    "list_tags",
    "lookup_commit",
    "resolve_revision",
    "to_bytes",
]

import re
from typing import TYPE_CHECKING, NamedTuple, Optional, Union

from dulwich.objects import Commit, ShaFile, Tag
from dulwich.refs import LOCAL_BRANCH_PREFIX, LOCAL_TAG_PREFIX, check_ref_format

from . import log_utils
from .errors import NotFoundError, StoreError

if TYPE_CHECKING:
    from dulwich.repo import BaseRepo

logger = log_utils.getLogger(__name__)

# SHA-1 and SHA-256 object ids, in hex.
_HEX_OBJECT_ID_RE = re.compile(rb"\A(?:[0-9a-f]{40}|[0-9a-f]{64})\Z")


def to_bytes(text: Union[str, bytes]) -> bytes:
    """Convert a revision or path to bytes.

    Args:
      text: Text to convert (str or bytes)

    Returns:
      UTF-8 encoded bytes
    """
    if isinstance(text, str):
        return text.encode("utf-8")
    return text


def is_hex_object_id(name: bytes) -> bool:
    """Check whether name is spelled like a full object id."""
    return _HEX_OBJECT_ID_RE.match(name) is not None


def _get_object(repo: "BaseRepo", sha: bytes) -> ShaFile:
    """Fetch an object that is expected to exist.

    Raises:
      StoreError: if the object is missing or can not be read
    """
    try:
        return repo.object_store[sha]
    except KeyError as exc:
        raise StoreError(f"Object {sha.decode('ascii')} is missing") from exc
    except OSError as exc:
        raise StoreError(f"Unable to read object {sha.decode('ascii')}") from exc


def _peel(repo: "BaseRepo", sha: bytes) -> ShaFile:
    """Follow tag objects until we reach something that isn't a tag."""
    obj = _get_object(repo, sha)
    while isinstance(obj, Tag):
        _obj_type, obj_sha = obj.object
        obj = _get_object(repo, obj_sha)
    return obj


def _read_ref(repo: "BaseRepo", refname: bytes) -> Optional[bytes]:
    """Look up a ref, returning None if it does not exist or is malformed."""
    if not check_ref_format(refname):
        logger.debug("Ignoring malformed ref name %r", refname)
        return None
    try:
        return repo.refs[refname]
    except KeyError:
        return None
    except OSError as exc:
        raise StoreError(f"Unable to read ref {refname.decode('utf-8', 'replace')}") from exc


class RevisionStrategy:
    """One interpretation of a revision string.

    Subclasses return the commit they resolve to, or None for a miss so
    that the next strategy gets a chance.
    """

    kind: str

    def lookup(self, repo: "BaseRepo", revision: bytes) -> Optional[Commit]:
        raise NotImplementedError(self.lookup)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class DirectHash(RevisionStrategy):
    """The revision is the full id of a commit."""

    kind = "hash"

    def lookup(self, repo: "BaseRepo", revision: bytes) -> Optional[Commit]:
        if not is_hex_object_id(revision):
            return None
        try:
            obj = repo.object_store[revision]
        except (KeyError, ValueError):
            # Spelled like an id, but not one we have.
            return None
        except OSError as exc:
            raise StoreError(
                f"Unable to read object {revision.decode('ascii')}"
            ) from exc
        if not isinstance(obj, Commit):
            return None
        return obj


class _RefStrategy(RevisionStrategy):
    prefix: bytes

    def lookup(self, repo: "BaseRepo", revision: bytes) -> Optional[Commit]:
        sha = _read_ref(repo, self.prefix + revision)
        if sha is None:
            return None
        obj = _peel(repo, sha)
        if not isinstance(obj, Commit):
            logger.info(
                "%s%s points at a %s, not a commit",
                self.prefix.decode("ascii"),
                revision.decode("utf-8", "replace"),
                obj.type_name.decode("ascii"),
            )
            return None
        return obj


class BranchRef(_RefStrategy):
    """The revision names a branch under refs/heads/."""

    kind = "branch"
    prefix = LOCAL_BRANCH_PREFIX


class TagRef(_RefStrategy):
    """The revision names a lightweight or annotated tag under refs/tags/."""

    kind = "tag"
    prefix = LOCAL_TAG_PREFIX


# Hashes are unambiguous and cheapest to check. Branches come before tags,
# so a branch wins a name collision.
STRATEGIES: tuple[RevisionStrategy, ...] = (DirectHash(), BranchRef(), TagRef())


def resolve_revision(
    repo: "BaseRepo",
    revision: Union[str, bytes],
    strategies: tuple[RevisionStrategy, ...] = STRATEGIES,
) -> Commit:
    """Resolve a revision string to a commit.

    Args:
      repo: A repository object
      revision: A commit id, branch name or tag name
      strategies: Interpretations to try, in order
    Returns: A Commit object
    Raises:
      NotFoundError: if no strategy resolves the revision
      StoreError: if the object store could not be read
    """
    revision = to_bytes(revision)
    if not revision:
        raise NotFoundError("revision", revision)
    for strategy in strategies:
        commit = strategy.lookup(repo, revision)
        if commit is not None:
            logger.debug(
                "Resolved %r as %s to %s",
                revision,
                strategy.kind,
                commit.id.decode("ascii"),
            )
            return commit
    raise NotFoundError("revision", revision)


def lookup_commit(repo: "BaseRepo", commit_id: Union[str, bytes]) -> Commit:
    """Look up a commit by its full id only.

    Raises:
      NotFoundError: if there is no such commit
      StoreError: if the object store could not be read
    """
    commit_id = to_bytes(commit_id).lower()
    commit = DirectHash().lookup(repo, commit_id)
    if commit is None:
        raise NotFoundError("commit", commit_id)
    return commit


def branch_heads(repo: "BaseRepo") -> list[tuple[str, bytes]]:
    """Return (short name, head sha) for every branch, sorted by name."""
    try:
        names = repo.refs.keys(base=LOCAL_BRANCH_PREFIX.rstrip(b"/"))
    except OSError as exc:
        raise StoreError("Unable to list branches") from exc
    heads = []
    for name in sorted(names):
        sha = _read_ref(repo, LOCAL_BRANCH_PREFIX + name)
        if sha is not None:
            heads.append((name.decode("utf-8", "replace"), sha))
    return heads


def list_branches(repo: "BaseRepo") -> list[str]:
    """Return the short names of all branches, sorted."""
    return [name for name, _ in branch_heads(repo)]


class TagInfo(NamedTuple):
    """A tag ref with what it points at.

    ``tag`` is the Tag object for annotated tags and None for lightweight
    ones. ``commit`` is None if the tag does not lead to a commit.
    """

    name: str
    commit: Optional[Commit]
    tag: Optional[Tag]


def list_tags(repo: "BaseRepo") -> list[TagInfo]:
    """Return all tags sorted by name, peeled to their commits."""
    try:
        names = repo.refs.keys(base=LOCAL_TAG_PREFIX.rstrip(b"/"))
    except OSError as exc:
        raise StoreError("Unable to list tags") from exc
    tags = []
    for name in sorted(names):
        sha = _read_ref(repo, LOCAL_TAG_PREFIX + name)
        if sha is None:
            continue
        obj = _get_object(repo, sha)
        tag = obj if isinstance(obj, Tag) else None
        if tag is not None:
            obj = _peel(repo, sha)
        commit = obj if isinstance(obj, Commit) else None
        tags.append(TagInfo(name.decode("utf-8", "replace"), commit, tag))
    return tags
