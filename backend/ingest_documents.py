"""
Document Ingestion Script for the DocQA retrieval pipeline.

This script:
1. Optionally clears existing chunks from Supabase
2. Loads the sample documents from sample_docs/ (tagged "sample-data")
3. Loads any extra .txt/.md/.csv/.pdf files given on the command line
4. Chunks, embeds and stores everything through the pipeline

Usage:
    python ingest_documents.py [--clear] [--no-samples] [FILE ...]
"""
import argparse
import asyncio
import sys
import logging
from pathlib import Path
from typing import List, Tuple

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent))

from logger import setup_logging
from models.document import ProcessedDocument
from services.rag_pipeline import RAGPipeline
from config import LOG_LEVEL, LOG_FORMAT

logger = logging.getLogger(__name__)

SAMPLE_DOCS_DIR = Path(__file__).parent / "sample_docs"
SAMPLE_SOURCE = "sample-data"


def parse_sample_document(text: str, fallback_title: str) -> Tuple[str, str]:
    """
    Split a sample markdown file into (title, body).

    The title is taken from a leading "# " heading when present.
    """
    lines = text.strip().splitlines()
    if lines and lines[0].startswith("# "):
        return lines[0][2:].strip(), "\n".join(lines[1:]).strip()
    return fallback_title, text.strip()


async def ingest_samples(pipeline: RAGPipeline, docs_dir: Path = SAMPLE_DOCS_DIR) -> List[ProcessedDocument]:
    """Ingest every sample markdown file in docs_dir."""
    documents = []
    for path in sorted(docs_dir.glob("*.md")):
        title, body = parse_sample_document(path.read_text(encoding="utf-8"), path.stem)
        logger.info(f"Processing: {title}")
        document = await pipeline.ingest_text(body, title, source=SAMPLE_SOURCE)
        logger.info(f"  ✓ Uploaded {title} ({len(document.chunks)} chunks, {document.total_tokens} tokens)")
        documents.append(document)
    return documents


async def ingest_files(pipeline: RAGPipeline, paths: List[Path]) -> List[ProcessedDocument]:
    """Ingest files through the document loader, as an upload would."""
    documents = []
    for path in paths:
        logger.info(f"Processing file: {path}")
        document = await pipeline.ingest_file(path.name, path.read_bytes())
        logger.info(f"  ✓ Uploaded {path.name} ({len(document.chunks)} chunks, {document.total_tokens} tokens)")
        documents.append(document)
    return documents


async def run(args: argparse.Namespace) -> None:
    logger.info("=" * 60)
    logger.info("Starting DocQA Document Ingestion")
    logger.info("=" * 60)

    pipeline = RAGPipeline.from_config()
    logger.info("✓ Pipeline initialized")

    if args.clear:
        cleared = await pipeline.vector_store.clear()
        logger.info(f"✓ Cleared {cleared} existing chunks")

    logger.info("Warming up embedding model...")
    if await pipeline.embedding_model.warmup():
        logger.info("✓ Embedding provider ready")
    else:
        logger.warning("Embedding provider unavailable, local hash embeddings will be used")

    documents: List[ProcessedDocument] = []
    if not args.no_samples:
        documents.extend(await ingest_samples(pipeline))
    documents.extend(await ingest_files(pipeline, [Path(f) for f in args.files]))

    stats = await pipeline.get_stats()

    logger.info("\n" + "=" * 60)
    logger.info("INGESTION COMPLETE!")
    logger.info("=" * 60)
    logger.info(f"Documents processed: {len(documents)}")
    logger.info(f"Chunks created: {sum(len(d.chunks) for d in documents)}")
    logger.info(f"Chunks in database: {stats['totalChunks']}")
    logger.info("Start the API with: python main.py")
    logger.info("=" * 60)


def main():
    """Main ingestion process."""
    parser = argparse.ArgumentParser(description="Ingest documents into the DocQA vector store")
    parser.add_argument("files", nargs="*", help="Extra .txt, .md, .csv or .pdf files to ingest")
    parser.add_argument("--clear", action="store_true", help="Delete all stored chunks first")
    parser.add_argument("--no-samples", action="store_true", help="Skip the bundled sample documents")
    args = parser.parse_args()

    setup_logging(LOG_LEVEL, json_format=LOG_FORMAT == "json")

    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.warning("\nIngestion interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"\nIngestion failed: {str(e)}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
