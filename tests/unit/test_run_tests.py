"""Unit tests for the run_tests.py marker selection."""

import pytest

from run_tests import build_command


@pytest.mark.parametrize("argv, expression", [
    (["--unit"], "unit"),
    (["--integration", "--fast"], "integration and not slow"),
    (["--unit", "--integration"], "(unit or integration)"),
    (["--unit", "--integration", "--fast"], "(unit or integration) and not slow"),
    (["--fast"], "not slow"),
])
def test_marker_expression(argv, expression):
    cmd = build_command(argv)

    assert cmd[cmd.index("-m") + 1] == expression


def test_no_flags_runs_everything():
    assert build_command([]) == ["pytest"]


def test_coverage_and_verbosity():
    cmd = build_command(["--coverage", "-v"])

    assert "-vv" in cmd
    assert "--cov=llm_relay" in cmd
