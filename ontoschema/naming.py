"""Name normalization shared by the simplifier, the schema and the renderers."""

from __future__ import annotations

import re

from .graph_store import local_name

_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_NON_ALNUM = re.compile(r"[^A-Za-z0-9]+")
_UNDERSCORES = re.compile(r"_+")


def to_snake_case(name: str) -> str:
    """hasAuthor -> has_author, Book-Copy -> book_copy."""
    name = _CAMEL_BOUNDARY.sub(r"\1_\2", name)
    name = _NON_ALNUM.sub("_", name)
    name = _UNDERSCORES.sub("_", name)
    return name.strip("_").lower()


def enum_value_name(name: str) -> str:
    """UPPER_SNAKE constant name of an enumeration member."""
    return to_snake_case(name).upper()


def readable_name(uri: str) -> str:
    """Local name of a datatype URI with its first letter capitalized."""
    local = local_name(uri)
    return local[:1].upper() + local[1:]
