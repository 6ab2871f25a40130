"""CLI for the FileLens search engine."""

import argparse
import json
import logging
import sys
from contextlib import contextmanager
from typing import Callable, Iterator, List

from tqdm import tqdm

from .config import FileLensConfig
from .errors import FileLensError, ModelNotReadyError, ModelUnavailableError, NoContentError
from .filelens import FileLens
from .models import ModelStatus, SearchResult

CALL_TO_ACTION = {
    ModelStatus.NEEDS_DOWNLOAD: "Run `filelens load` to download the embedding model.",
    ModelStatus.UNAVAILABLE: (
        "Install local model support (pip install 'filelens[local]') "
        "or use --provider openai."
    ),
    ModelStatus.ERROR: "Run `filelens load` to retry loading the model.",
}


def _make_lens(args: argparse.Namespace) -> FileLens:
    config = FileLensConfig(
        embedding_provider=args.provider,
        embedding_model=args.model,
        cache_enabled=not args.no_cache,
        cache_path=args.cache,
    )
    return FileLens(config)


@contextmanager
def _progress(desc: str) -> Iterator[Callable[[float], None]]:
    with tqdm(total=100, desc=desc, unit="%", leave=False) as bar:
        def update(fraction: float) -> None:
            bar.n = int(round(fraction * 100))
            bar.refresh()
        yield update


def _ensure_model(lens: FileLens) -> None:
    """Load the model if it is available locally, or exit with a call to action."""
    report = lens.check_availability()
    if report.status == ModelStatus.READY:
        return
    if report.status != ModelStatus.NEEDS_LOAD:
        print(f"Embedding model {lens.embedder.model}: {report.message}")
        print(CALL_TO_ACTION.get(report.status, ""))
        sys.exit(1)
    with _progress("Loading model") as update:
        lens.load_model(update)


def _print_results(results: List[SearchResult], directory: bool = False) -> None:
    if not results:
        print("No matches found")
        return
    print(f"{len(results)} results")
    for i, r in enumerate(results, 1):
        where = f"{r.file_name} {r.label}" if directory else r.label
        print(f"{i:>3}. [{r.score:.3f}] {where}: {r.text[:100]}")


def status(args: argparse.Namespace) -> None:
    """Show model and cache status."""
    lens = _make_lens(args)
    lens.check_availability()
    info = lens.get_stats()
    print(json.dumps(info, indent=2))
    hint = CALL_TO_ACTION.get(lens.status.status)
    if hint:
        print(hint)
    lens.close()


def load(args: argparse.Namespace) -> None:
    """Download (if needed) and load the embedding model."""
    lens = _make_lens(args)
    report = lens.check_availability()
    print(f"Embedding model {lens.embedder.model}: {report.message}")
    with _progress("Loading model") as update:
        lens.load_model(update)
    print(f"Ready ({lens.embedder.dimension} dimensions)")
    lens.close()


def index_file(args: argparse.Namespace) -> None:
    """Build and cache the index for one file without searching it."""
    lens = _make_lens(args)
    _ensure_model(lens)
    with _progress("Indexing") as update:
        built = lens.build_file_index(args.path, update)
    print(f"Indexed {len(built)} fragments from {args.path} ({built.dimension} dimensions)")
    lens.close()


def search(args: argparse.Namespace) -> None:
    """Index one file and search it."""
    lens = _make_lens(args)
    _ensure_model(lens)
    with _progress("Indexing") as update:
        index = lens.build_file_index(args.path, update)
    _print_results(lens.search(index, args.query, args.k))
    lens.close()


def search_dir(args: argparse.Namespace) -> None:
    """Index a directory and search across its files."""
    lens = _make_lens(args)
    _ensure_model(lens)
    with _progress("Indexing files") as update:
        result = lens.build_directory_index(args.path, update)
    if not result.index:
        print("No supported files with content found")
        sys.exit(1)
    print(f"Indexed {result.file_count} files")
    _print_results(lens.search_directory(result.index, args.query, args.k), directory=True)
    lens.close()


def clear_cache(args: argparse.Namespace) -> None:
    """Remove all cached indexes."""
    lens = _make_lens(args)
    lens.clear_cache()
    print("Index cache cleared")
    lens.close()


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="filelens",
        description="FileLens - local semantic search for CSV, JSON and text files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  filelens load                           Download and load the embedding model
  filelens index data.csv                 Build and cache the index for a file
  filelens search data.csv "senior staff" Search one file
  filelens search-dir ./notes "deadlines" Search every supported file in a directory
  filelens status                         Show model and cache status

Environment variables:
  HF_TOKEN          Optional for HuggingFace models
  OPENAI_API_KEY    Required for OpenAI embeddings
"""
    )

    parser.add_argument(
        "--version", action="version", version="%(prog)s 0.3.0"
    )
    parser.add_argument(
        "--cache", type=str, default=FileLensConfig.cache_path,
        help="Index cache path (default: filelens-cache.db)"
    )
    parser.add_argument(
        "--no-cache", action="store_true", help="Do not read or write the index cache"
    )
    parser.add_argument(
        "--provider", type=str, default=FileLensConfig.embedding_provider,
        help="Embedding provider: huggingface or openai"
    )
    parser.add_argument("--model", type=str, help="Embedding model name")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    status_parser = subparsers.add_parser("status", help="Show model and cache status")
    status_parser.set_defaults(func=status)

    load_parser = subparsers.add_parser("load", help="Download and load the embedding model")
    load_parser.set_defaults(func=load)

    index_parser = subparsers.add_parser("index", help="Build and cache a file's index")
    index_parser.add_argument("path", help="CSV, JSON, TXT or MD file")
    index_parser.set_defaults(func=index_file)

    search_parser = subparsers.add_parser("search", help="Search a single file")
    search_parser.add_argument("path", help="CSV, JSON, TXT or MD file")
    search_parser.add_argument("query", help="Free-text query")
    search_parser.add_argument("-k", type=int, default=FileLensConfig.default_k,
                               help="Number of results")
    search_parser.set_defaults(func=search)

    dir_parser = subparsers.add_parser("search-dir", help="Search across a directory")
    dir_parser.add_argument("path", help="Directory to scan")
    dir_parser.add_argument("query", help="Free-text query")
    dir_parser.add_argument("-k", type=int, default=FileLensConfig.directory_k,
                            help="Number of files to return")
    dir_parser.set_defaults(func=search_dir)

    clear_parser = subparsers.add_parser("clear-cache", help="Remove cached indexes")
    clear_parser.set_defaults(func=clear_cache)

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    try:
        args.func(args)
    except NoContentError as exc:
        print(f"Error: {exc}")
        sys.exit(1)
    except (ModelNotReadyError, ModelUnavailableError) as exc:
        print(f"Error: {exc}")
        print("Run `filelens load` to download or load the embedding model.")
        sys.exit(1)
    except FileLensError as exc:
        print(f"Search failed: {exc}")
        sys.exit(1)
    except (RuntimeError, ValueError) as exc:
        print(f"Error: could not read {getattr(args, 'path', 'input')}: {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()
