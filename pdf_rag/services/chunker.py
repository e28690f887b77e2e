# =============================================================================
# Token-Based Text Chunker — tiktoken
# =============================================================================
#
# Splits loaded PDF pages into DocumentChunks, the unit of embedding and
# retrieval. Step 2 of ingestion (load → chunk → embed → store).
#
# ALGORITHM:
# 1. For each page, in page order, encode the page text with tiktoken
#    (cl100k_base, the tokenizer of the OpenAI embedding models)
# 2. Slide a window of chunk_size tokens with chunk_overlap overlap
# 3. Decode each window; skip windows that are blank after stripping
# 4. Number the surviving chunks 0, 1, 2, ... across the whole document
#
# Windows never cross a page boundary, so every chunk has exactly one
# page_number, and a short page is exactly one chunk.
#
# The output depends only on (pages, filename, chunk_size, chunk_overlap):
# re-processing the same file yields the same ordinal → text mapping,
# which is what makes redelivered jobs overwrite their own chunks.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

import tiktoken

from pdf_rag.errors import ChunkError
from pdf_rag.services.loader import LoadedPage

logger = logging.getLogger(__name__)

MetadataValue = str | int | float | bool


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DocumentChunk:
    """
    A bounded slice of one document's text.

    ordinal is 0-indexed and stable for a given input and chunk config.
    metadata keys:
        source: str — original filename
        source_path: str — where the file was stored
        page_number: int — 1-indexed page the chunk comes from
        token_count: int — exact token count (tiktoken)
        contains_table: bool — page had a table
    """

    source_document: str
    ordinal: int
    text: str
    metadata: dict[str, MetadataValue] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Tiktoken Encoder — Cached Singleton
# ---------------------------------------------------------------------------

_encoder: tiktoken.Encoding | None = None


def _get_encoder() -> tiktoken.Encoding:
    """Lazily initialize and cache the tiktoken encoder."""
    global _encoder
    if _encoder is None:
        _encoder = tiktoken.get_encoding("cl100k_base")
    return _encoder


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def validate_chunk_config(chunk_size: int, chunk_overlap: int) -> None:
    """Raise ChunkError unless 0 <= chunk_overlap < chunk_size."""
    if chunk_size <= 0:
        raise ChunkError(f"chunk_size must be positive, got {chunk_size}")
    if chunk_overlap < 0 or chunk_overlap >= chunk_size:
        raise ChunkError(
            f"chunk_overlap must be in [0, chunk_size), got "
            f"{chunk_overlap} with chunk_size={chunk_size}"
        )


def chunk_pages(
    pages: Sequence[LoadedPage],
    filename: str,
    source_path: str = "",
    chunk_size: int = 512,
    chunk_overlap: int = 50,
) -> list[DocumentChunk]:
    """
    Split loaded pages into token-based chunks.

    Args:
        pages: Pages in document order.
        filename: Original filename; becomes DocumentChunk.source_document.
        source_path: Stored file location, copied into metadata.
        chunk_size: Maximum tokens per chunk.
        chunk_overlap: Tokens shared by consecutive chunks of one page.

    Returns:
        Chunks in document order with sequential ordinals. Empty if no page
        has any text; the caller decides whether that is an error.

    Raises:
        ChunkError: If the chunk config is invalid.
    """
    validate_chunk_config(chunk_size, chunk_overlap)
    encoder = _get_encoder()
    step = chunk_size - chunk_overlap

    chunks: list[DocumentChunk] = []
    total_tokens = 0

    for page in sorted(pages, key=lambda p: p.page_number):
        tokens = encoder.encode(page.text)
        total_tokens += len(tokens)

        for start in range(0, len(tokens), step):
            end = min(start + chunk_size, len(tokens))
            window = tokens[start:end]

            text = encoder.decode(window).strip()
            if text:
                chunks.append(DocumentChunk(
                    source_document=filename,
                    ordinal=len(chunks),
                    text=text,
                    metadata={
                        "source": filename,
                        "source_path": source_path,
                        "page_number": page.page_number,
                        "token_count": len(window),
                        "contains_table": page.contains_table,
                    },
                ))

            if end >= len(tokens):
                break

    if chunks:
        logger.info(
            "Chunked '%s' into %d chunks (%d tokens, size=%d, overlap=%d)",
            filename, len(chunks), total_tokens, chunk_size, chunk_overlap,
        )
    else:
        logger.warning("No text to chunk in '%s'", filename)

    return chunks
