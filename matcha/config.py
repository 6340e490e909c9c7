# config.py -- Settings for the matcha web server
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

"""Command line and environment settings."""

__all__ = [
    "DEFAULT_BRANCH",
    "DEFAULT_PORT",
    "Settings",
    "parse_settings",
]

import optparse
import os
from collections.abc import Mapping, Sequence
from typing import NamedTuple, Optional

DEFAULT_PORT = 8088
DEFAULT_BRANCH = "master"
DEFAULT_ATTRIBUTION_TIMEOUT = 30.0
DEFAULT_CACHE_SIZE = 64


class Settings(NamedTuple):
    """Settings for one server process.

    Attributes:
      root_dir: Directory holding the repositories to serve
      listen_address: Address to bind to, "" for all interfaces
      port: TCP port to listen on
      default_branch: Revision used when a URL names none
      attribution_timeout: Seconds a tree listing may spend walking
        history, or None for no limit
      cache_size: Number of repositories kept open
    """

    root_dir: str = "."
    listen_address: str = ""
    port: int = DEFAULT_PORT
    default_branch: str = DEFAULT_BRANCH
    attribution_timeout: Optional[float] = DEFAULT_ATTRIBUTION_TIMEOUT
    cache_size: int = DEFAULT_CACHE_SIZE


def _make_parser() -> optparse.OptionParser:
    parser = optparse.OptionParser(usage="%prog [options] [ROOT_DIR]")
    parser.add_option(
        "-l",
        "--listen_address",
        dest="listen_address",
        default=None,
        help="Binding IP address (default: all interfaces).",
    )
    parser.add_option(
        "-p",
        "--port",
        dest="port",
        type=int,
        default=None,
        help=f"Port to listen on (default: $PORT or {DEFAULT_PORT}).",
    )
    parser.add_option(
        "--default-branch",
        dest="default_branch",
        default=None,
        help=f"Branch shown when a URL names no revision (default: {DEFAULT_BRANCH}).",
    )
    parser.add_option(
        "--attribution-timeout",
        dest="attribution_timeout",
        type=float,
        default=None,
        help="Seconds a tree listing may spend walking history; 0 disables the limit.",
    )
    parser.add_option(
        "--cache-size",
        dest="cache_size",
        type=int,
        default=DEFAULT_CACHE_SIZE,
        help="Number of repositories to keep open.",
    )
    return parser


def parse_settings(
    argv: Sequence[str], environ: Optional[Mapping[str, str]] = None
) -> Settings:
    """Build Settings from command line arguments and the environment.

    Command line options take precedence over the PORT,
    MATCHA_DEFAULT_BRANCH and MATCHA_ATTRIBUTION_TIMEOUT environment
    variables. Invalid values exit with a usage error.

    Args:
      argv: Arguments, without the program name
      environ: Environment, defaults to os.environ
    """
    if environ is None:
        environ = os.environ
    parser = _make_parser()
    options, args = parser.parse_args(list(argv))

    if len(args) > 1:
        parser.error("at most one root directory may be given")
    root_dir = args[0] if args else "."

    port = options.port
    if port is None:
        port_value = environ.get("PORT", "")
        if port_value:
            try:
                port = int(port_value)
            except ValueError:
                parser.error(f"invalid PORT value: {port_value!r}")
        else:
            port = DEFAULT_PORT
    if not 0 <= port <= 65535:
        parser.error(f"port out of range: {port}")

    timeout = options.attribution_timeout
    if timeout is None:
        timeout_value = environ.get("MATCHA_ATTRIBUTION_TIMEOUT", "")
        if timeout_value:
            try:
                timeout = float(timeout_value)
            except ValueError:
                parser.error(
                    f"invalid MATCHA_ATTRIBUTION_TIMEOUT value: {timeout_value!r}"
                )
        else:
            timeout = DEFAULT_ATTRIBUTION_TIMEOUT
    if timeout < 0:
        parser.error("attribution timeout must not be negative")

    if options.cache_size < 1:
        parser.error("cache size must be at least 1")

    return Settings(
        root_dir=root_dir,
        listen_address=options.listen_address or "",
        port=port,
        default_branch=(
            options.default_branch
            or environ.get("MATCHA_DEFAULT_BRANCH")
            or DEFAULT_BRANCH
        ),
        attribution_timeout=timeout or None,
        cache_size=options.cache_size,
    )
