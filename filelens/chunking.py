"""Content chunking policies per file type."""

import json
import re
from typing import Any, List

from .models import Fragment

PARAGRAPH_BREAK = re.compile(r"\n\s*\n")

TABULAR_TYPES = ("csv", "tsv")
HIERARCHICAL_TYPES = ("json",)
TEXT_TYPES = ("txt", "md")


def _cell(row: List[Any], j: int) -> str:
    if j >= len(row) or row[j] is None:
        return ""
    return str(row[j])


def _chunk_tabular(rows: Any) -> List[Fragment]:
    """One fragment per data row, rendered as 'header: value' pairs."""
    if not isinstance(rows, (list, tuple)) or len(rows) < 2:
        return []
    headers = rows[0]
    if not isinstance(headers, (list, tuple)):
        return []

    fragments = []
    for i in range(1, len(rows)):
        row = rows[i]
        if not isinstance(row, (list, tuple)):
            continue
        text = ", ".join(f"{h}: {_cell(row, j)}" for j, h in enumerate(headers))
        fragments.append(Fragment(text=text, location=i, label=f"Row {i}"))
    return fragments


def _encode(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def _describe(value: Any) -> str:
    """Compact placeholder for a value inside an object summary."""
    if isinstance(value, list):
        return f"[{len(value)} items]"
    if isinstance(value, dict):
        return "{...}"
    return _encode(value)


def _chunk_hierarchical(data: Any, path: str, depth: int, max_depth: int) -> List[Fragment]:
    if depth > max_depth:
        return []

    fragments: List[Fragment] = []
    if isinstance(data, list):
        for i, item in enumerate(data):
            item_path = f"{path}[{i}]"
            if isinstance(item, (dict, list)):
                fragments.extend(_chunk_hierarchical(item, item_path, depth + 1, max_depth))
            else:
                fragments.append(Fragment(
                    text=f"{item_path}: {_encode(item)}",
                    location=item_path,
                    label=item_path,
                ))
    elif isinstance(data, dict):
        summary = ", ".join(f"{k}: {_describe(v)}" for k, v in data.items())
        if summary:
            fragments.append(Fragment(text=summary, location=path, label=path))

        for key, value in data.items():
            if isinstance(value, (dict, list)):
                fragments.extend(
                    _chunk_hierarchical(value, f"{path}.{key}", depth + 1, max_depth)
                )
    return fragments


def _line_number(text: str, offset: int) -> int:
    """1-based line number of the character at ``offset``."""
    return text.count("\n", 0, offset) + 1


def _split_paragraphs(text: str) -> List[Fragment]:
    """Split on blank lines, keeping the true starting line of each paragraph."""
    fragments = []
    start = 0
    bounds = [(m.start(), m.end()) for m in PARAGRAPH_BREAK.finditer(text)]
    bounds.append((len(text), len(text)))
    for end, next_start in bounds:
        segment = text[start:end]
        stripped = segment.strip()
        if stripped:
            lead = len(segment) - len(segment.lstrip())
            line = _line_number(text, start + lead)
            fragments.append(Fragment(text=stripped, location=line, label=f"Line {line}"))
        start = next_start
    return fragments


def _split_lines(text: str) -> List[Fragment]:
    fragments = []
    for i, line in enumerate(text.split("\n"), start=1):
        if line.strip():
            fragments.append(Fragment(text=line.strip(), location=i, label=f"Line {i}"))
    return fragments


def _chunk_text(text: Any) -> List[Fragment]:
    if not isinstance(text, str) or not text.strip():
        return []
    paragraphs = _split_paragraphs(text)
    if len(paragraphs) > 1:
        return paragraphs
    return _split_lines(text)


def chunk_for_search(content: Any, file_type: str, *, max_depth: int = 3) -> List[Fragment]:
    """
    Split structured file content into fragments for semantic search.

    Args:
        content: Parsed content - list of rows for tabular files, decoded JSON
                 for hierarchical files, a string for free text
        file_type: 'csv', 'tsv', 'json', 'txt' or 'md'
        max_depth: Recursion cap for hierarchical content

    Returns:
        Fragments in source order. Empty for unknown types or unusable content.
    """
    if content is None:
        return []
    file_type = (file_type or "").lower()

    if file_type in TABULAR_TYPES:
        return _chunk_tabular(content)
    if file_type in HIERARCHICAL_TYPES:
        return _chunk_hierarchical(content, "root", 0, max_depth)
    if file_type in TEXT_TYPES:
        return _chunk_text(content)
    return []


def chunk_file_preview(
    text: str,
    file_type: str,
    *,
    max_fragments: int = 20,
    slice_chars: int = 200,
) -> List[Fragment]:
    """
    Bounded chunking of raw file text for directory-wide indexing.

    CSV rows are paired with the header line, JSON is re-serialized and
    sliced, and free text is split into paragraphs (or lines). At most
    ``max_fragments`` fragments are returned per file.
    """
    if not isinstance(text, str) or not text.strip() or max_fragments <= 0:
        return []
    file_type = (file_type or "").lower()

    if file_type in TABULAR_TYPES:
        lines = [line for line in text.split("\n") if line.strip()]
        header = lines[0].strip() if lines else ""
        return [
            Fragment(text=f"{header}\n{line.strip()}", location=i, label=f"Row {i}")
            for i, line in enumerate(lines[1:max_fragments + 1], start=1)
        ]

    if file_type in HIERARCHICAL_TYPES:
        try:
            serialized = json.dumps(json.loads(text), indent=1, ensure_ascii=False)
        except ValueError:
            return [Fragment(text=text[:500], location=0, label="chars 0-500")]
        fragments = []
        for offset in range(0, len(serialized), slice_chars):
            if len(fragments) >= max_fragments:
                break
            fragments.append(Fragment(
                text=serialized[offset:offset + slice_chars],
                location=offset,
                label=f"chars {offset}-{offset + slice_chars}",
            ))
        return fragments

    paragraphs = _split_paragraphs(text)
    if paragraphs:
        return paragraphs[:max_fragments]
    return _split_lines(text)[:max_fragments]
