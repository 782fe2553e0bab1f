"""Tests for configuration loading."""

from pathlib import Path

import pytest

from deadcode_cli.config import MODULE_FILTER, AnalysisConfig, load_config, parse_tags
from deadcode_cli.errors import UsageError


def test_defaults(temp_dir: Path):
    config = load_config(temp_dir)
    assert config == AnalysisConfig()
    assert config.filter == MODULE_FILTER


def test_reads_tool_table(make_project):
    root = make_project({"pyproject.toml": '''
        [tool.deadcode]
        test = true
        tags = "TYPE_CHECKING, linux"
        filter = "^pkg"
        generated = true
    '''})
    config = load_config(root)
    assert config == AnalysisConfig(
        include_tests=True,
        tags=("TYPE_CHECKING", "linux"),
        filter="^pkg",
        include_generated=True,
    )


def test_override_keeps_unset_values():
    config = AnalysisConfig(include_tests=True, filter="^pkg")
    updated = config.override(include_tests=False, filter=None, tags=None)
    assert updated.include_tests is False
    assert updated.filter == "^pkg"


def test_invalid_value(make_project):
    root = make_project({"pyproject.toml": '[tool.deadcode]\ntest = "yes"\n'})
    with pytest.raises(UsageError, match="test"):
        load_config(root)


def test_malformed_pyproject_is_ignored(make_project):
    root = make_project({"pyproject.toml": "[tool.deadcode\n"})
    assert load_config(root) == AnalysisConfig()


def test_parse_tags():
    assert parse_tags("a,b c") == ("a", "b", "c")
    assert parse_tags("") == ()
