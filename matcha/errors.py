# errors.py -- errors for matcha
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

"""matcha exception classes."""

__all__ = [
    "NOT_FOUND_KINDS",
    "AttributionCancelled",
    "NotFoundError",
    "StoreError",
    "UnresolvedAttribution",
]

from typing import Optional, Union

# Missing-entity kind -> user-facing message.
NOT_FOUND_KINDS = {
    "revision": "No such revision",
    "directory": "No such directory",
    "file": "No such file",
    "commit": "No such commit",
    "repository": "No such repository",
}


class NotFoundError(Exception):
    """A revision, path, commit or repository does not exist.

    These are always user-facing; ``kind`` selects the message shown.
    """

    def __init__(self, kind: str, name: Optional[Union[str, bytes]] = None) -> None:
        """Initialize a NotFoundError.

        Args:
            kind: One of the keys of NOT_FOUND_KINDS.
            name: The name that was looked up, if any.
        """
        if kind not in NOT_FOUND_KINDS:
            raise ValueError(f"Unknown not-found kind {kind!r}")
        if isinstance(name, bytes):
            name = name.decode("utf-8", "replace")
        self.kind = kind
        self.name = name
        if name is None:
            Exception.__init__(self, self.message)
        else:
            Exception.__init__(self, f"{self.message}: {name}")

    @property
    def message(self) -> str:
        """The message shown to users."""
        return NOT_FOUND_KINDS[self.kind]


class StoreError(Exception):
    """The object store or the filesystem failed underneath us.

    The original exception is available as ``__cause__``.
    """


class UnresolvedAttribution(Exception):
    """A history walk ended without finding a commit for a pattern."""

    def __init__(self, pattern: str) -> None:
        self.pattern = pattern
        Exception.__init__(self, f"No commit in history touches {pattern!r}")


class AttributionCancelled(Exception):
    """A history walk was cancelled or ran past its deadline."""

    def __init__(self, visited: int) -> None:
        self.visited = visited
        Exception.__init__(self, f"History walk cancelled after {visited} commits")
