"""Recognise machine-generated Python source files.

A file is generated when a comment placed before its first statement has a
line of the form::

    # Code generated <tool> DO NOT EDIT.

Only the header is scanned; the first matching comment wins.
"""

from __future__ import annotations

import io
import tokenize
from typing import Optional

GENERATED_PREFIX = "# Code generated "
GENERATED_SUFFIX = " DO NOT EDIT."

_HEADER_TOKENS = {
    tokenize.ENCODING,
    tokenize.NL,
    tokenize.NEWLINE,
    tokenize.INDENT,
    tokenize.DEDENT,
}


def generator(source: str) -> Optional[str]:
    """Return the generating tool named in the header of *source*, if any."""
    readline = io.StringIO(source).readline
    try:
        for tok in tokenize.generate_tokens(readline):
            if tok.type == tokenize.COMMENT:
                line = tok.string.rstrip()
                if not line.startswith(GENERATED_PREFIX):
                    continue
                rest = line[len(GENERATED_PREFIX):]
                if rest.endswith(GENERATED_SUFFIX):
                    return rest[: -len(GENERATED_SUFFIX)]
            elif tok.type in _HEADER_TOKENS:
                continue
            else:
                break  # first statement
    except tokenize.TokenError:
        return None
    return None


def is_generated(source: str) -> bool:
    return generator(source) is not None
