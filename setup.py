#!/usr/bin/python3
# Setup file for matcha
# Copyright (C) 2026 The matcha authors
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later

from setuptools import setup

matcha_version_string = "0.1.0"

setup(
    name="matcha",
    version=matcha_version_string,
    description="Read-only web viewer for git repositories",
    keywords="git web viewer",
    license="Apache-2.0 OR GPL-2.0-or-later",
    packages=["matcha"],
    package_data={"": ["py.typed"]},
    python_requires=">=3.9",
    install_requires=["dulwich>=0.22"],
    entry_points={"console_scripts": ["matcha=matcha.web:main"]},
    test_suite="tests",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "License :: OSI Approved :: Apache Software License",
        "Programming Language :: Python :: 3",
        "Operating System :: POSIX",
        "Topic :: Software Development :: Version Control",
        "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
    ],
)
