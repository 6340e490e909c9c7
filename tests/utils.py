# utils.py -- Test utilities for matcha
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

"""Utility functions common to matcha tests."""

import datetime
import time
from typing import Any, Optional

from dulwich.index import commit_tree
from dulwich.objects import Blob, Commit, ShaFile, Tag

# Plain files are very frequently used in tests, so let the mode be very short.
F = 0o100644  # Shorthand mode for Files.

DEFAULT_TIME = int(time.mktime(datetime.datetime(2010, 1, 1).timetuple()))


def make_commit(**attrs: Any) -> Commit:
    """Make a Commit object with a default set of members.

    Args:
      attrs: dict of attributes to overwrite from the default values.
    Returns: A newly initialized Commit object.
    """
    all_attrs = {
        "author": b"Test Author <test@nodomain.com>",
        "author_time": DEFAULT_TIME,
        "author_timezone": 0,
        "committer": b"Test Committer <test@nodomain.com>",
        "commit_time": DEFAULT_TIME,
        "commit_timezone": 0,
        "message": b"Test message.",
        "parents": [],
        "tree": b"0" * 40,
    }
    all_attrs.update(attrs)
    commit = Commit()
    for name, value in all_attrs.items():
        setattr(commit, name, value)
    return commit


def make_tag(target: ShaFile, **attrs: Any) -> Tag:
    """Make an annotated Tag object pointing at target.

    Args:
      target: The object to tag.
      attrs: dict of attributes to overwrite from the default values.
    Returns: A newly initialized Tag object.
    """
    all_attrs = {
        "tagger": b"Test Author <test@nodomain.com>",
        "tag_time": DEFAULT_TIME,
        "tag_timezone": 0,
        "message": b"Test message.",
        "name": b"Test Tag",
    }
    all_attrs.update(attrs)
    tag = Tag()
    for name, value in all_attrs.items():
        setattr(tag, name, value)
    tag.object = (type(target), target.id)
    return tag


def blob(data: bytes) -> Blob:
    return Blob.from_string(data)


def build_commit_graph(
    object_store: Any,
    commit_spec: list[list[int]],
    trees: Optional[dict[int, list[tuple]]] = None,
    attrs: Optional[dict[int, dict[str, Any]]] = None,
) -> list[Commit]:
    """Build a commit graph from a concise specification.

    Sample usage:
    >>> c1, c2, c3 = build_commit_graph(store, [[1], [2, 1], [3, 1, 2]])
    >>> store[store[c3].parents[0]] == c1
    True
    >>> store[store[c3].parents[1]] == c2
    True

    If not otherwise specified, commits will refer to the empty tree and have
    commit times increasing in the same order as the commit spec.

    Args:
      object_store: An ObjectStore to commit objects to.
      commit_spec: An iterable of iterables of ints defining the commit
        graph. Each entry defines one commit, and entries must be in
        topological order. The first element of each entry is a commit
        number, and the remaining elements are its parents.
      trees: An optional dict of commit number -> tree spec for building
        trees for commits. The tree spec is an iterable of (path, blob, mode)
        or (path, blob) entries; if mode is omitted, it defaults to the
        normal file mode (0100644).
      attrs: A dict of commit number -> (dict of attribute -> value) for
        assigning additional values to the commits.
    Returns: The list of commit objects created.
    Raises:
      ValueError: If an undefined commit identifier is listed as a parent.
    """
    if trees is None:
        trees = {}
    if attrs is None:
        attrs = {}
    commit_time = 0
    nums = {}
    commits = []

    for commit in commit_spec:
        commit_num = commit[0]
        try:
            parent_ids = [nums[pn] for pn in commit[1:]]
        except KeyError as exc:
            (missing_parent,) = exc.args
            raise ValueError(f"Unknown parent {missing_parent}") from exc

        blobs = []
        for entry in trees.get(commit_num, []):
            if len(entry) == 2:
                path, obj = entry
                entry = (path, obj, F)
            path, obj, mode = entry
            blobs.append((path, obj.id, mode))
            object_store.add_object(obj)
        tree_id = commit_tree(object_store, blobs)

        commit_attrs = {
            "message": f"Commit {commit_num}".encode("ascii"),
            "parents": parent_ids,
            "tree": tree_id,
            "commit_time": commit_time,
        }
        commit_attrs.update(attrs.get(commit_num, {}))
        commit_obj = make_commit(**commit_attrs)

        # By default, increment the time by a lot. Out-of-order commits should
        # be closer together than this because their main cause is clock skew.
        commit_time = commit_attrs["commit_time"] + 100
        nums[commit_num] = commit_obj.id
        object_store.add_object(commit_obj)
        commits.append(commit_obj)

    return commits
