# -*- coding: utf-8 -*-
"""setuptools-based setup.py for actorchain.

Install for development with::

    pip install -e .[test]

then run the tests with ``python3 runtests.py``.
"""

import ast
import os

from setuptools import setup  # type: ignore[import]

def read(*relpath, encoding="utf8"):
    with open(os.path.join(os.path.dirname(__file__), *relpath), encoding=encoding) as fh:
        return fh.read()

def read_version(*relpath):
    """Parse ``__version__`` out of a module without importing it.

    Importing ``actorchain`` would import its dependencies, which may not be
    installed yet at build time.
    """
    path = os.path.join(*relpath)
    for line in read(*relpath).splitlines():
        if line.startswith("__version__"):
            node = ast.parse(line, filename=path).body[0]
            assert isinstance(node, ast.Assign) and isinstance(node.value, ast.Constant)
            return node.value.value
    raise RuntimeError(f"Version information not found in {path}")

setup(
    name="actorchain",
    version=read_version("actorchain", "__init__.py"),
    # The unit tests in `actorchain.tests` and `actorchain.syntax.tests` are NOT deployed.
    packages=["actorchain", "actorchain.syntax"],
    provides=["actorchain"],
    keywords=["actors", "async", "continuations", "continuation-passing-style",
              "syntactic-macros", "macros", "ast-transformation"],
    install_requires=["mcpyrate>=3.6.0"],
    # The tests use the macro-enabled testing framework of `unpythonic`.
    extras_require={"test": ["unpythonic>=0.15.0"]},
    python_requires=">=3.10",
    description="Write actor message handlers as sequential async code.",
    long_description=read("README.md"),
    long_description_content_type="text/markdown",
    license="BSD",
    classifiers=["Development Status :: 3 - Alpha",
                 "Framework :: AsyncIO",
                 "Intended Audience :: Developers",
                 "License :: OSI Approved :: BSD License",
                 "Programming Language :: Python :: 3",
                 "Programming Language :: Python :: 3 :: Only",
                 "Topic :: Software Development :: Code Generators",
                 "Topic :: Software Development :: Libraries :: Python Modules"
                 ],
    zip_safe=False  # macros are not zip safe, because the zip importer fails to find sources.
)
