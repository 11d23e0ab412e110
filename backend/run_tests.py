#!/usr/bin/env python3
"""
Test runner script for TransferGuard backend.
"""
import subprocess
import sys
import os


def run_tests():
    """Run the test suite."""
    os.chdir(os.path.dirname(os.path.abspath(__file__)))
    result = subprocess.run([
        sys.executable, "-m", "pytest",
        "--verbose",
        "--tb=short",
        "--asyncio-mode=auto",
        "tests/",
    ])
    return result.returncode


if __name__ == "__main__":
    sys.exit(run_tests())
