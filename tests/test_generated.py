"""Tests for generated-file detection."""

from deadcode_cli.generated import generator, is_generated


def test_header_comment():
    source = "# Code generated by protoc-gen-py. DO NOT EDIT.\n\ndef f():\n    pass\n"
    assert generator(source) == "by protoc-gen-py."
    assert is_generated(source)


def test_header_after_other_comments():
    source = "#!/usr/bin/env python\n# -*- coding: utf-8 -*-\n\n# Code generated tool DO NOT EDIT.\nx = 1\n"
    assert generator(source) == "tool"


def test_comment_after_first_statement_is_ignored():
    source = '"""Module docstring."""\n# Code generated tool DO NOT EDIT.\nx = 1\n'
    assert not is_generated(source)


def test_marker_must_match_exactly():
    assert not is_generated("# Code generated tool. Do not edit.\n")
    assert not is_generated("#Code generated tool DO NOT EDIT.\n")
    assert not is_generated("# code generated tool DO NOT EDIT.\n")


def test_trailing_whitespace_is_ignored():
    assert is_generated("# Code generated tool DO NOT EDIT.   \n")


def test_empty_source():
    assert generator("") is None
