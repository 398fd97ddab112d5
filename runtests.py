# -*- coding: utf-8 -*-
"""Run all tests for `actorchain`.

The test modules use macros, but this script does not, so it runs under
regular `python3`. It activates `mcpyrate` before importing the test modules.

Set the environment variable `ACTORCHAIN_DEBUG` to see the debug log of the
macro and the actor runtime while the tests run.
"""

import logging
import os
import sys
from importlib import import_module

from unpythonic.test.fixtures import session, testset, tests_errored, tests_failed
from unpythonic.collections import unbox

import mcpyrate.activate  # noqa: F401

TESTDIRS = (("runtime", ("actorchain", "tests")),
            ("macros", ("actorchain", "syntax", "tests")))

def testmodules(*pathparts):
    """List the test modules in a directory, as dotted module names."""
    filenames = sorted(fn for fn in os.listdir(os.path.join(*pathparts))
                       if fn.startswith("test_") and fn.endswith(".py"))
    return [".".join(pathparts + (fn[:-len(".py")],)) for fn in filenames]

def main():
    if os.environ.get("ACTORCHAIN_DEBUG"):
        logging.basicConfig(level=logging.DEBUG)
    with session():
        for tsname, pathparts in TESTDIRS:
            with testset(tsname):
                for m in testmodules(*pathparts):
                    # One testset per module, so that an ImportError, or an error at
                    # macro expansion time, only fails that module.
                    with testset(m):
                        import_module(m).runtests()
    return (unbox(tests_failed) + unbox(tests_errored)) == 0

if __name__ == '__main__':
    if not main():
        sys.exit(1)  # pragma: no cover, this only runs when the tests fail.
