# =============================================================================
# PDF Loader — Docling Document Intelligence
# =============================================================================
#
# Reads an uploaded PDF and returns its text page by page. Step 1 of the
# ingestion pipeline (load → chunk → embed → store).
#
# We iterate Docling items (not export_to_markdown()) so every paragraph,
# heading and table keeps its page number; the items are then grouped into
# one LoadedPage per PDF page, in reading order.
#
# Our own dataclasses (LoadedPage, LoadedDocument) are passed downstream,
# never Docling types. The chunker does not import Docling.
#
# FAILURE MODES (all → LoadError, never retried):
#   - file missing or not a regular file
#   - file unreadable (permissions, I/O error)
#   - no "%PDF-" header in the first KiB (corrupted or not a PDF)
#   - Docling conversion failure
# =============================================================================

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

from pdf_rag.errors import LoadError

logger = logging.getLogger(__name__)

PDF_MAGIC = b"%PDF-"
_HEADER_SCAN_BYTES = 1024


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class LoadedPage:
    """The text content of one PDF page (1-indexed page_number)."""

    page_number: int
    text: str
    element_count: int = 0
    contains_table: bool = False


@dataclass
class LoadedDocument:
    """All pages of a PDF in page order."""

    filename: str
    pages: list[LoadedPage] = field(default_factory=list)
    page_count: int = 0


# ---------------------------------------------------------------------------
# Docling Converter — Lazy Singleton
# ---------------------------------------------------------------------------
# Initialization loads layout models into memory, so one converter is
# shared by every job in the worker. The lock keeps concurrent worker
# threads from building it twice on first use.
# ---------------------------------------------------------------------------

_converter = None
_converter_lock = threading.Lock()


def _get_converter():
    """Lazily initialize and cache the Docling DocumentConverter."""
    global _converter
    with _converter_lock:
        if _converter is None:
            from docling.datamodel.base_models import InputFormat
            from docling.datamodel.pipeline_options import PdfPipelineOptions
            from docling.document_converter import DocumentConverter, PdfFormatOption

            logger.info(
                "Initializing Docling DocumentConverter "
                "(first use, may take a few seconds)..."
            )

            # OCR is off: scanned PDFs without a text layer are out of scope.
            pipeline_options = PdfPipelineOptions()
            pipeline_options.do_table_structure = True
            pipeline_options.do_ocr = False

            _converter = DocumentConverter(
                format_options={
                    InputFormat.PDF: PdfFormatOption(
                        pipeline_options=pipeline_options,
                    ),
                }
            )
            logger.info("Docling DocumentConverter initialized")
    return _converter


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def check_pdf_file(file_path: str) -> Path:
    """
    Verify that `file_path` is an existing, readable file with a PDF header.

    Raises:
        LoadError: If any check fails.
    """
    path = Path(file_path)
    if not path.is_file():
        raise LoadError(f"PDF not found: {file_path}")

    try:
        with path.open("rb") as fh:
            header = fh.read(_HEADER_SCAN_BYTES)
    except OSError as exc:
        raise LoadError(f"Cannot read '{path.name}': {exc}", exc) from exc

    if PDF_MAGIC not in header:
        raise LoadError(f"'{path.name}' is not a valid PDF (missing %PDF- header)")
    return path


def load_pdf(file_path: str) -> LoadedDocument:
    """
    Load a PDF and return its text grouped by page.

    Args:
        file_path: Absolute path to the PDF on disk.

    Returns:
        LoadedDocument with one LoadedPage per page that has text.

    Raises:
        LoadError: If the file is missing, unreadable, or not a valid PDF.
    """
    path = check_pdf_file(file_path)

    logger.info("Loading PDF: %s", path.name)
    converter = _get_converter()

    try:
        result = converter.convert(str(path))
    except Exception as exc:
        raise LoadError(f"Docling failed to parse '{path.name}': {exc}", exc) from exc

    document = load_docling_document(result.document, filename=path.name)

    logger.info(
        "Loaded '%s': %d pages, %d with text",
        path.name, document.page_count, len(document.pages),
    )
    return document


def load_docling_document(doc: object, filename: str) -> LoadedDocument:
    """
    Group the items of a DoclingDocument into pages.

    Split out from load_pdf() so the grouping can be exercised without
    running a conversion.
    """
    from docling_core.types.doc.labels import DocItemLabel

    text_labels = (
        DocItemLabel.TEXT, DocItemLabel.LIST_ITEM, DocItemLabel.CAPTION,
        DocItemLabel.FOOTNOTE, DocItemLabel.SECTION_HEADER, DocItemLabel.TITLE,
    )

    parts_by_page: dict[int, list[str]] = {}
    tables_on_page: set[int] = set()

    for item, _level in doc.iterate_items():
        # item.prov[0] is the primary location; items without provenance
        # are attributed to page 1.
        page_no = 1
        if getattr(item, "prov", None):
            page_no = item.prov[0].page_no or 1

        label = getattr(item, "label", None)
        if label == DocItemLabel.TABLE:
            text = _table_to_markdown(item, doc)
            if text:
                tables_on_page.add(page_no)
        elif label in text_labels:
            text = (getattr(item, "text", "") or "").strip()
        else:
            continue

        if text:
            parts_by_page.setdefault(page_no, []).append(text)

    pages = [
        LoadedPage(
            page_number=page_no,
            text="\n\n".join(parts),
            element_count=len(parts),
            contains_table=page_no in tables_on_page,
        )
        for page_no, parts in sorted(parts_by_page.items())
    ]

    num_pages = getattr(doc, "num_pages", None)
    page_count = num_pages() if callable(num_pages) else 0
    if not page_count:
        page_count = max((p.page_number for p in pages), default=0)

    return LoadedDocument(filename=filename, pages=pages, page_count=page_count)


def _table_to_markdown(table_item: object, document: object) -> str:
    """
    Convert a Docling TableItem to a markdown table.

    Falls back to the item's plain text if DataFrame export fails.
    """
    try:
        if hasattr(table_item, "export_to_dataframe"):
            df = table_item.export_to_dataframe(doc=document)
            return df.to_markdown(index=False)
    except Exception as exc:
        logger.warning("Table export to DataFrame failed: %s", exc)

    text = getattr(table_item, "text", "")
    return text.strip() if text else ""
