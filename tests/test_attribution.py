# test_attribution.py -- Tests for matcha.attribution
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

"""Tests for attributing paths to the commits that last changed them."""

import threading
import time

from dulwich.diff_tree import tree_changes
from dulwich.object_store import MemoryObjectStore
from dulwich.objects import Tree

from matcha.attribution import (
    attribute,
    directory_pattern,
    file_pattern,
    pattern_matches,
    tree_patterns,
)
from matcha.errors import AttributionCancelled, StoreError, UnresolvedAttribution

from . import TestCase
from .utils import blob, build_commit_graph


class PatternTests(TestCase):
    def test_directory_pattern(self) -> None:
        self.assertEqual("", directory_pattern(""))
        self.assertEqual("", directory_pattern("/"))
        self.assertEqual("dir/", directory_pattern("dir"))
        self.assertEqual("dir/sub/", directory_pattern("/dir/sub/"))
        self.assertEqual(b"dir/", directory_pattern(b"dir"))

    def test_file_pattern(self) -> None:
        self.assertEqual("dir/a.txt", file_pattern("/dir/a.txt"))
        self.assertEqual(b"a.txt", file_pattern(b"a.txt"))

    def test_empty_pattern_matches_everything(self) -> None:
        self.assertTrue(pattern_matches(b"", b"a.txt"))
        self.assertTrue(pattern_matches(b"", b"dir/a.txt"))

    def test_directory_pattern_needs_separator(self) -> None:
        self.assertTrue(pattern_matches(b"abc/", b"abc/d.txt"))
        self.assertFalse(pattern_matches(b"abc/", b"abcd.txt"))
        self.assertFalse(pattern_matches(b"abc/", b"abc"))

    def test_file_pattern_is_exact(self) -> None:
        self.assertTrue(pattern_matches(b"a", b"a"))
        self.assertFalse(pattern_matches(b"a", b"ab"))
        self.assertFalse(pattern_matches(b"a", b"a/b"))

    def test_tree_patterns_root(self) -> None:
        tree = Tree()
        tree.add(b"README", 0o100644, b"a" * 40)
        tree.add(b"src", 0o040000, b"b" * 40)
        tree.add(b"vendor", 0o160000, b"c" * 40)
        self.assertEqual(
            [b"", b"README", b"src/", b"vendor"], tree_patterns("", tree)
        )

    def test_tree_patterns_subdirectory(self) -> None:
        tree = Tree()
        tree.add(b"main.py", 0o100755, b"a" * 40)
        tree.add(b"pkg", 0o040000, b"b" * 40)
        self.assertEqual(
            [b"src/", b"src/main.py", b"src/pkg/"], tree_patterns("src", tree)
        )


class AttributeTests(TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.store = MemoryObjectStore()

    def make_commits(self, commit_spec, **kwargs):
        return build_commit_graph(self.store, commit_spec, **kwargs)

    def assertAttributed(self, expected, commit, patterns, **kwargs) -> None:
        result = attribute(self.store, commit, patterns, **kwargs)
        self.assertEqual([c.id for c in expected], [c.id for c in result])

    def test_root_commit_resolves_whole_tree(self) -> None:
        (c1,) = self.make_commits([[1]])
        self.assertAttributed([c1], c1, [""])

    def test_root_commit_resolves_its_paths(self) -> None:
        (c1,) = self.make_commits(
            [[1]], trees={1: [(b"a.txt", blob(b"a")), (b"dir/b.txt", blob(b"b"))]}
        )
        self.assertAttributed([c1, c1, c1, c1], c1, ["", "a.txt", "dir/", "dir/b.txt"])

    def test_last_modification_wins(self) -> None:
        a1 = blob(b"a1")
        a2 = blob(b"a2")
        b = blob(b"b")
        c1, c2, c3 = self.make_commits(
            [[1], [2, 1], [3, 2]],
            trees={
                1: [(b"dir/a.txt", a1)],
                2: [(b"dir/a.txt", a1), (b"dir/b.txt", b)],
                3: [(b"dir/a.txt", a2), (b"dir/b.txt", b)],
            },
        )
        self.assertAttributed(
            [c3, c3, c2], c3, ["dir/a.txt", "dir/", "dir/b.txt"]
        )
        self.assertAttributed([c2, c1], c2, ["dir/b.txt", "dir/a.txt"])

    def test_directory_prefix_is_not_a_name_prefix(self) -> None:
        x = blob(b"x")
        d = blob(b"d")
        c1, c2 = self.make_commits(
            [[1], [2, 1]],
            trees={
                1: [(b"abc/x.txt", x)],
                2: [(b"abc/x.txt", x), (b"abcd.txt", d)],
            },
        )
        self.assertAttributed([c1, c2], c2, ["abc/", "abcd.txt"])

    def test_file_pattern_is_not_a_name_prefix(self) -> None:
        a = blob(b"a")
        ab = blob(b"ab")
        c1, c2 = self.make_commits(
            [[1], [2, 1]],
            trees={1: [(b"a", a)], 2: [(b"a", a), (b"ab", ab)]},
        )
        self.assertAttributed([c1, c2], c2, ["a", "ab"])

    def test_nested_pattern_never_older_than_enclosing(self) -> None:
        f1 = blob(b"f1")
        f2 = blob(b"f2")
        g = blob(b"g")
        c1, c2, c3, c4 = self.make_commits(
            [[1], [2, 1], [3, 2], [4, 3]],
            trees={
                1: [(b"top/sub/f", f1)],
                2: [(b"top/sub/f", f2)],
                3: [(b"top/sub/f", f2), (b"top/g", g)],
                4: [(b"top/sub/f", f2), (b"top/g", g), (b"other", g)],
            },
        )
        patterns = ["", "top/", "top/sub/", "top/sub/f", "top/g"]
        result = attribute(self.store, c4, patterns)
        times = [c.commit_time for c in result]
        # The enclosing patterns come first; each nested one is no newer.
        self.assertGreaterEqual(times[0], times[1])
        self.assertGreaterEqual(times[1], times[2])
        self.assertGreaterEqual(times[2], times[3])
        self.assertGreaterEqual(times[1], times[4])
        self.assertEqual([c4.id, c3.id, c2.id, c2.id, c3.id], [c.id for c in result])

    def test_merge_counts_changes_against_any_parent(self) -> None:
        a1, a2 = blob(b"a1"), blob(b"a2")
        b1, b2 = blob(b"b1"), blob(b"b2")
        c1, c2, c3, c4 = self.make_commits(
            [[1], [2, 1], [3, 1], [4, 2, 3]],
            trees={
                1: [(b"a.txt", a1), (b"b.txt", b1)],
                2: [(b"a.txt", a2), (b"b.txt", b1)],
                3: [(b"a.txt", a1), (b"b.txt", b2)],
                4: [(b"a.txt", a2), (b"b.txt", b2)],
            },
        )
        # Each path differs from one of the merge's parents, so the merge
        # itself is credited rather than the branch that changed it.
        self.assertAttributed([c4, c4], c4, ["a.txt", "b.txt"])
        self.assertAttributed([c2], c2, ["a.txt"])

    def test_deletion_touches_enclosing_directory(self) -> None:
        a = blob(b"a")
        b = blob(b"b")
        c1, c2 = self.make_commits(
            [[1], [2, 1]],
            trees={
                1: [(b"dir/a", a), (b"dir/b", b)],
                2: [(b"dir/a", a)],
            },
        )
        self.assertAttributed([c2, c1, c2], c2, ["dir/", "dir/a", ""])

    def test_unresolved_pattern(self) -> None:
        c1, c2 = self.make_commits(
            [[1], [2, 1]], trees={1: [(b"a", blob(b"a"))], 2: [(b"a", blob(b"b"))]}
        )
        result = attribute(self.store, c2, ["a", "missing.txt"])
        self.assertEqual(c2.id, result[0].id)
        self.assertIsNone(result.get(1))
        self.assertEqual([1], result.unresolved())
        self.assertRaises(UnresolvedAttribution, lambda: result[1])
        self.assertEqual(2, result.commits_visited)

    def test_no_patterns(self) -> None:
        (c1,) = self.make_commits([[1]])
        result = attribute(self.store, c1, [])
        self.assertEqual(0, len(result))
        self.assertEqual(0, result.commits_visited)

    def test_stops_once_everything_resolved(self) -> None:
        commits = self.make_commits(
            [[i] if i == 1 else [i, i - 1] for i in range(1, 11)],
            trees={i: [(b"f", blob(str(i).encode("ascii")))] for i in range(1, 11)},
        )
        result = attribute(self.store, commits[-1], ["f", ""])
        self.assertEqual([commits[-1].id] * 2, [c.id for c in result])
        self.assertEqual(1, result.commits_visited)
        self.assertEqual(1, result.diffs_computed)

    def test_single_walk_over_long_history(self) -> None:
        num_commits = 10000
        a = blob(b"a")
        commits = self.make_commits(
            [[i] if i == 1 else [i, i - 1] for i in range(1, num_commits + 1)],
            trees={
                i: [(b"a.txt", a), (b"b.txt", blob(str(i).encode("ascii")))]
                for i in range(1, num_commits + 1)
            },
        )
        calls = []

        def counting_changes(store, old_tree, new_tree):
            calls.append(new_tree)
            return tree_changes(store, old_tree, new_tree)

        result = attribute(
            self.store, commits[-1], ["a.txt"], changes_func=counting_changes
        )
        self.assertEqual(commits[0].id, result[0].id)
        self.assertEqual(num_commits, result.commits_visited)
        # One diff per parent, plus the root against the empty tree.
        self.assertEqual(num_commits, len(calls))
        self.assertEqual(num_commits, len(set(calls)))

    def test_deadline(self) -> None:
        (c1,) = self.make_commits([[1]])
        self.assertRaises(
            AttributionCancelled,
            attribute,
            self.store,
            c1,
            [""],
            deadline=time.monotonic() - 1,
        )

    def test_cancelled(self) -> None:
        (c1,) = self.make_commits([[1]])
        event = threading.Event()
        event.set()
        self.assertRaises(
            AttributionCancelled, attribute, self.store, c1, [""], cancelled=event
        )

    def test_unset_event_does_not_cancel(self) -> None:
        (c1,) = self.make_commits([[1]])
        self.assertAttributed([c1], c1, [""], cancelled=threading.Event())

    def test_missing_history_is_store_error(self) -> None:
        c1, c2, c3 = self.make_commits([[1], [2, 1], [3, 2]])
        del self.store[c1.id]
        self.assertRaises(StoreError, attribute, self.store, c3, ["missing"])
