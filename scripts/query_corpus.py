"""Query entrypoint.

Runs one query against a partition and prints the ranked matches, or the
rendered grounding prompt with ``--context``.
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
from corpus_rag.config import GlobalConfig, configure_logging


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Query a corpus partition")

    parser.add_argument("query", type=str, help="Natural-language query.")

    parser.add_argument(
        "--config-file",
        "-c",
        required=True,
        type=str,
        help="Path to the YAML configuration file.",
    )

    parser.add_argument(
        "--partition-id",
        "-p",
        required=True,
        type=int,
        help="Partition to search.",
    )

    parser.add_argument(
        "--top-k",
        "-k",
        type=int,
        default=None,
        help="Number of matches (default: retrieval.top_k from config).",
    )

    parser.add_argument(
        "--diverse",
        action="store_true",
        help="Re-rank candidates for diversity.",
    )

    parser.add_argument(
        "--context",
        action="store_true",
        help="Print the rendered grounding prompt instead of the match list.",
    )

    parser.add_argument(
        "--preview-chars",
        type=int,
        default=200,
        help="Characters of each match to print (default: 200).",
    )

    return parser.parse_args()


def main() -> None:
    args = parse_args()

    cfg = GlobalConfig.load(args.config_file)
    configure_logging(cfg.logging)
    container = build_container(cfg)
    pipeline = container.pipeline

    if args.context:
        grounding = pipeline.build_context(
            args.partition_id, args.query, top_k=args.top_k, diverse=args.diverse
        )
        print(grounding.prompt)
        return

    if args.diverse:
        matches = pipeline.query_diverse(args.partition_id, args.query, args.top_k)
    else:
        matches = pipeline.query(args.partition_id, args.query, args.top_k)

    if not matches:
        print("No matches.")
        return

    for rank, match in enumerate(matches, start=1):
        preview = " ".join(match.content.split())[: args.preview_chars]
        print(f"{rank:>3}. [{match.similarity:.4f}] {match.document_name} (chunk {match.chunk_id})")
        print(f"     {preview}")


if __name__ == "__main__":
    main()
