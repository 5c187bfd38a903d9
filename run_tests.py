#!/usr/bin/env python
"""Test runner for llm-relay."""

import sys
import subprocess
import argparse


def build_parser():
    parser = argparse.ArgumentParser(description="Run llm-relay tests")
    parser.add_argument("--unit", action="store_true", help="Run unit tests")
    parser.add_argument("--integration", action="store_true", help="Run integration tests")
    parser.add_argument("--coverage", action="store_true", help="Generate coverage report")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    parser.add_argument("--fast", action="store_true", help="Skip tests that wait on real time")
    return parser


def marker_expression(args):
    """Pytest ``-m`` expression for the selected suites, or None for everything."""
    # --unit and --integration together select both suites
    suites = []
    if args.unit:
        suites.append("unit")
    if args.integration:
        suites.append("integration")

    clauses = []
    if suites:
        clauses.append(suites[0] if len(suites) == 1 else "(" + " or ".join(suites) + ")")
    if args.fast:
        clauses.append("not slow")

    return " and ".join(clauses) or None


def build_command(argv=None):
    """Build the pytest command line for ``argv``."""
    args = build_parser().parse_args(argv)

    cmd = ["pytest"]

    markers = marker_expression(args)
    if markers:
        cmd.extend(["-m", markers])

    if args.verbose:
        cmd.append("-vv")

    if args.coverage:
        cmd.extend([
            "--cov=llm_relay",
            "--cov-report=term-missing",
            "--cov-report=html"
        ])

    return cmd


def main():
    """Run tests with various options."""
    cmd = build_command()

    print(f"Running: {' '.join(cmd)}")
    result = subprocess.run(cmd, cwd=".")

    return result.returncode


if __name__ == "__main__":
    sys.exit(main())
