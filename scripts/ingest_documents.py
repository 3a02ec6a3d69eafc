"""Text ingestion entrypoint.

This script reads plain-text files, chunks and embeds them, and stores the
chunks in a partition of the configured corpus store. The partition is
created when ``--partition-name`` is given instead of ``--partition-id``.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = REPO_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from corpus_rag.app.container import build_container
from corpus_rag.common.errors import CorpusRAGError
from corpus_rag.config import GlobalConfig, configure_logging


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ingest text documents into a corpus partition")

    parser.add_argument(
        "paths",
        nargs="+",
        type=str,
        help="Files or directories to ingest.",
    )

    parser.add_argument(
        "--config-file",
        "-c",
        required=True,
        type=str,
        help="Path to the YAML configuration file.",
    )

    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument(
        "--partition-id",
        type=int,
        default=None,
        help="Existing partition to ingest into.",
    )
    target.add_argument(
        "--partition-name",
        type=str,
        default=None,
        help="Create a new partition with this name and ingest into it.",
    )

    parser.add_argument(
        "--glob",
        "-g",
        type=str,
        default="*.txt",
        help="Glob used when a path is a directory (default: *.txt).",
    )

    parser.add_argument(
        "--encoding",
        type=str,
        default="utf-8",
        help="Text encoding of the input files (default: utf-8).",
    )

    parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail a document when any of its chunks cannot be stored.",
    )

    return parser.parse_args()


def _collect_files(paths: list[str], pattern: str) -> list[Path]:
    files: list[Path] = []
    for raw in paths:
        p = Path(raw).expanduser()
        if p.is_dir():
            files.extend(sorted(f for f in p.rglob(pattern) if f.is_file()))
        elif p.is_file():
            files.append(p)
        else:
            raise FileNotFoundError(f"Input path not found: {p}")
    return files


def main() -> None:
    args = parse_args()

    cfg = GlobalConfig.load(args.config_file)
    configure_logging(cfg.logging)
    container = build_container(cfg)

    if args.partition_name is not None:
        partition = container.store.create_partition(args.partition_name)
        print(f"Created partition {partition.id} ({partition.name})")
    else:
        partition = container.store.get_partition(args.partition_id)

    files = _collect_files(args.paths, args.glob)
    print(f"Ingesting {len(files)} file(s) into partition {partition.id}...")

    total_chunks = 0
    failures = 0
    for path in files:
        content = path.read_text(encoding=args.encoding)
        try:
            result = container.pipeline.add_document(
                partition.id,
                path.name,
                content,
                source_path=str(path.resolve()),
                strict=args.strict,
            )
        except CorpusRAGError as exc:
            failures += 1
            print(f"  {path.name}: FAILED ({type(exc).__name__}: {exc})")
            continue

        total_chunks += result.chunks_created
        suffix = f", {result.chunks_failed} failed" if result.partial else ""
        print(f"  {path.name}: document {result.document_id}, {result.chunks_created} chunks{suffix}")

    print(f"Ingestion complete! {total_chunks} chunks stored, {failures} document(s) failed.")
    if failures:
        sys.exit(1)


if __name__ == "__main__":
    main()
