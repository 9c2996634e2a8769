#!/usr/bin/env python3
"""
Run the embedded cluster operator with Kopf.

Kopf's CLI is started with the given arguments, as if invoked as ``kopf run``.

Usage:
    python run_operator.py [any kopf run arguments]

Examples:
    python run_operator.py --verbose --all-namespaces
    python run_operator.py -A --liveness=http://0.0.0.0:8080/healthz
"""

import sys

if __name__ == '__main__':
    import kopf.cli

    # Registers the handlers
    import ecoperator.app  # noqa: F401

    # Behave as if called as: kopf run <args>
    sys.argv.insert(1, 'run')

    sys.exit(kopf.cli.main(prog_name="kopf"))
