"""File access: reading, parsing and listing files for indexing."""

import csv
import io
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Union
from urllib.parse import urlparse

import requests
from langchain_community.document_loaders import TextLoader

from .models import FileRef

logger = logging.getLogger(__name__)

CSV_DELIMITERS = ",\t;|"


@dataclass
class LoadedFile:
    """A file read from disk and parsed for the chunker."""
    name: str
    file_type: str
    text: str
    content: Any


def _is_url(s: str) -> bool:
    """Check if string is a URL."""
    p = urlparse(s)
    return p.scheme in ("http", "https") and bool(p.netloc)


def detect_file_type(name: str) -> str:
    """File type tag from a file name's extension ('' when there is none)."""
    suffix = Path(urlparse(name).path if _is_url(name) else name).suffix
    return suffix.lstrip(".").lower()


def read_text(path: Union[str, Path], *, autodetect_encoding: bool = True) -> str:
    """Read a text file, detecting its encoding when it is not UTF-8."""
    docs = TextLoader(str(path), autodetect_encoding=autodetect_encoding).load()
    return "".join(d.page_content or "" for d in docs)


def parse_csv(text: str) -> List[List[str]]:
    """Parse delimited text into rows, sniffing the delimiter from the header."""
    text = text.strip()
    if not text:
        return []
    header = text.split("\n", 1)[0]
    delimiter = max(CSV_DELIMITERS, key=header.count)
    reader = csv.reader(io.StringIO(text), delimiter=delimiter)
    return [[cell.strip() for cell in row] for row in reader if row]


def parse_content(text: str, file_type: str) -> Any:
    """
    Turn raw file text into the structure the chunker expects.

    Raises:
        ValueError: if a JSON file cannot be decoded
    """
    if file_type == "csv":
        return parse_csv(text)
    if file_type == "tsv":
        return [[cell.strip() for cell in row]
                for row in csv.reader(io.StringIO(text.strip()), delimiter="\t") if row]
    if file_type == "json":
        return json.loads(text)
    return text


def load_file(path: Union[str, Path]) -> LoadedFile:
    """Read and parse one file."""
    path = Path(path)
    file_type = detect_file_type(path.name)
    text = read_text(path)
    return LoadedFile(
        name=path.name,
        file_type=file_type,
        text=text,
        content=parse_content(text, file_type),
    )


def fetch_file(ref: FileRef, *, timeout: float = 30.0) -> str:
    """
    Fetch the raw text of a directory entry, from disk or over HTTP.

    Raises:
        RuntimeError / requests.RequestException: if the file cannot be read
        ValueError: if the reference has neither a path nor a URL
    """
    if ref.path is not None:
        return read_text(ref.path)
    if ref.url and _is_url(ref.url):
        response = requests.get(ref.url, timeout=timeout)
        response.raise_for_status()
        return response.text
    raise ValueError(f"No readable location for {ref.name}")


def discover_files(root: Union[str, Path], *, recursive: bool = True) -> List[FileRef]:
    """List the files below ``root`` as FileRefs, in sorted path order."""
    root = Path(root)
    pattern = "**/*" if recursive else "*"
    refs = []
    for path in sorted(root.glob(pattern)):
        if any(part.startswith(".") for part in path.relative_to(root).parts):
            continue
        kind = "directory" if path.is_dir() else "file"
        refs.append(FileRef(name=path.name, path=path, kind=kind))
    logger.debug("Discovered %d entries under %s", len(refs), root)
    return refs
