"""Minimal frontmatter parser for piece files.

Supports the constrained YAML subset the content directory uses:

    ---
    id: 4
    title: "Quoted or bare scalar"
    mood:
      - analytical
      - critical
    ---
    Body text...

Scalars are ``key: value`` lines. A ``key:`` line with no value opens a list
that collects the ``- item`` lines following it.
"""

import re
from typing import Dict, List, Tuple, Union

from piece_search.core.exceptions import InvalidDocumentError

FrontmatterValue = Union[str, List[str]]

FRONTMATTER_PATTERN = re.compile(r"---[ \t]*\n(.*?)\n---[ \t]*\n?(.*)\Z", re.DOTALL)


def strip_wrapping_quotes(value: str) -> str:
    """Remove one pair of matching single or double quotes around a value."""
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def parse_frontmatter(block: str, filename: str) -> Dict[str, FrontmatterValue]:
    """
    Parse a frontmatter block into an untyped key-value map.

    Args:
        block: Text between the ``---`` delimiters.
        filename: Source file name, used in error messages.

    Returns:
        Mapping of keys to scalar strings or lists of strings.

    Raises:
        InvalidDocumentError: If a list item appears without an open list key.
    """
    result: Dict[str, FrontmatterValue] = {}
    current_list_key = None

    for raw_line in block.split("\n"):
        line = raw_line.strip()
        if not line:
            continue

        if line.startswith("- ") or line == "-":
            if current_list_key is None:
                raise InvalidDocumentError(
                    filename,
                    "frontmatter",
                    f"Unexpected list item without key in frontmatter of {filename}",
                )
            result[current_list_key].append(strip_wrapping_quotes(line[2:].strip()))
            continue

        current_list_key = None
        key, separator, raw_value = line.partition(":")
        if not separator:
            continue

        key = key.strip()
        value = raw_value.strip()
        if not value:
            current_list_key = key
            result[key] = []
            continue

        result[key] = strip_wrapping_quotes(value)

    return result


def parse_markdown_file(raw: str, filename: str) -> Tuple[Dict[str, FrontmatterValue], str]:
    """
    Split a piece file into parsed frontmatter and body text.

    Args:
        raw: Full file contents.
        filename: Source file name, used in error messages.

    Returns:
        Tuple of (frontmatter map, body).

    Raises:
        InvalidDocumentError: If the file has no frontmatter block.
    """
    normalized = raw.replace("\r\n", "\n").replace("\r", "\n")
    match = FRONTMATTER_PATTERN.match(normalized)
    if not match:
        raise InvalidDocumentError(
            filename, "frontmatter", f"Missing frontmatter in {filename}")

    frontmatter, body = match.groups()
    return parse_frontmatter(frontmatter, filename), body or ""
