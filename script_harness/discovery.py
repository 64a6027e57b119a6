"""Discover test functions in script source text."""

import re
from collections.abc import Sequence


def discover(source_text: str, prefix: str = "Test_") -> Sequence[str]:
    """Find test function definitions in source text.

    Args:
        source_text: Script source
        prefix: Reserved name prefix of test functions

    Returns:
        Unique test names in the order they are defined.

    """
    pattern = re.compile(
        rf"^[ \t]*(?:async[ \t]+)?def[ \t]+({re.escape(prefix)}\w*)[ \t]*\(",
        re.MULTILINE,
    )
    return list(dict.fromkeys(pattern.findall(source_text)))


def filter_tests(names: Sequence[str], pattern: str | None) -> Sequence[str]:
    """Keep names matching ``pattern``.

    The pattern is searched as a regular expression, so a plain word matches
    as a substring. Patterns that do not compile match literally.
    """
    if not pattern:
        return list(names)
    try:
        regex = re.compile(pattern)
    except re.error:
        return [name for name in names if pattern in name]
    return [name for name in names if regex.search(name)]
