# =============================================================================
# Unit Tests — PDF Loader
# =============================================================================
#
# File checks run against real files in tmp_path. Page grouping is tested
# with stand-in Docling items, so no layout models are loaded.
# =============================================================================

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from docling_core.types.doc.labels import DocItemLabel

from pdf_rag.errors import LoadError
from pdf_rag.services.loader import check_pdf_file, load_docling_document, load_pdf


def _item(label, text, page_no=1):
    return SimpleNamespace(label=label, text=text, prov=[SimpleNamespace(page_no=page_no)])


class _FakeDoclingDocument:
    def __init__(self, items, pages=0):
        self._items = items
        self._pages = pages

    def iterate_items(self):
        for item in self._items:
            yield item, 0

    def num_pages(self):
        return self._pages


class TestCheckPdfFile:
    def test_valid_header_passes(self, tmp_path):
        pdf = tmp_path / "ok.pdf"
        pdf.write_bytes(b"%PDF-1.7\n%...\n")
        assert check_pdf_file(str(pdf)) == pdf

    def test_missing_file(self, tmp_path):
        with pytest.raises(LoadError, match="not found"):
            check_pdf_file(str(tmp_path / "nope.pdf"))

    def test_directory_is_not_a_file(self, tmp_path):
        with pytest.raises(LoadError):
            check_pdf_file(str(tmp_path))

    def test_corrupted_file(self, tmp_path):
        bad = tmp_path / "corrupt.pdf"
        bad.write_bytes(b"\x00\x01garbage that is not a pdf")
        with pytest.raises(LoadError, match="not a valid PDF") as exc_info:
            check_pdf_file(str(bad))
        assert exc_info.value.retryable is False
        assert exc_info.value.step == "loading"


class TestLoadPdf:
    def test_corrupted_file_never_reaches_docling(self, tmp_path):
        bad = tmp_path / "corrupt.pdf"
        bad.write_bytes(b"hello")
        with patch("pdf_rag.services.loader._get_converter") as get_converter:
            with pytest.raises(LoadError):
                load_pdf(str(bad))
        get_converter.assert_not_called()

    def test_conversion_failure_is_load_error(self, tmp_path):
        pdf = tmp_path / "broken.pdf"
        pdf.write_bytes(b"%PDF-1.4 truncated")
        converter = MagicMock()
        converter.convert.side_effect = RuntimeError("xref table broken")
        with patch("pdf_rag.services.loader._get_converter", return_value=converter):
            with pytest.raises(LoadError, match="xref table broken"):
                load_pdf(str(pdf))

    def test_converted_document_grouped_by_page(self, tmp_path):
        pdf = tmp_path / "two.pdf"
        pdf.write_bytes(b"%PDF-1.4")
        doc = _FakeDoclingDocument(
            [_item(DocItemLabel.TEXT, "First.", 1), _item(DocItemLabel.TEXT, "Second.", 2)],
            pages=2,
        )
        converter = MagicMock()
        converter.convert.return_value = SimpleNamespace(document=doc)
        with patch("pdf_rag.services.loader._get_converter", return_value=converter):
            loaded = load_pdf(str(pdf))
        assert loaded.filename == "two.pdf"
        assert [p.text for p in loaded.pages] == ["First.", "Second."]


class TestLoadDoclingDocument:
    def test_items_grouped_in_page_order(self):
        doc = _FakeDoclingDocument(
            [
                _item(DocItemLabel.TITLE, "Report", 1),
                _item(DocItemLabel.TEXT, "Intro paragraph.", 1),
                _item(DocItemLabel.TEXT, "Page two text.", 2),
            ],
            pages=2,
        )
        loaded = load_docling_document(doc, filename="r.pdf")
        assert loaded.page_count == 2
        assert [p.page_number for p in loaded.pages] == [1, 2]
        assert loaded.pages[0].text == "Report\n\nIntro paragraph."
        assert loaded.pages[0].element_count == 2

    def test_pages_without_text_are_omitted(self):
        doc = _FakeDoclingDocument(
            [_item(DocItemLabel.TEXT, "Only page three.", 3)],
            pages=3,
        )
        loaded = load_docling_document(doc, filename="s.pdf")
        assert loaded.page_count == 3
        assert [p.page_number for p in loaded.pages] == [3]

    def test_pictures_and_blank_items_skipped(self):
        doc = _FakeDoclingDocument(
            [
                _item(DocItemLabel.PICTURE, "", 1),
                _item(DocItemLabel.TEXT, "   ", 1),
                _item(DocItemLabel.TEXT, "Body.", 1),
            ],
        )
        loaded = load_docling_document(doc, filename="p.pdf")
        assert len(loaded.pages) == 1
        assert loaded.pages[0].text == "Body."
        assert loaded.page_count == 1

    def test_table_falls_back_to_text(self):
        table = _item(DocItemLabel.TABLE, "| Q1 | 100 |", 1)
        table.export_to_dataframe = MagicMock(side_effect=ValueError("no grid"))
        loaded = load_docling_document(_FakeDoclingDocument([table]), filename="t.pdf")
        assert loaded.pages[0].text == "| Q1 | 100 |"
        assert loaded.pages[0].contains_table is True

    def test_item_without_provenance_goes_to_page_one(self):
        item = SimpleNamespace(label=DocItemLabel.TEXT, text="Floating.", prov=[])
        loaded = load_docling_document(_FakeDoclingDocument([item]), filename="f.pdf")
        assert loaded.pages[0].page_number == 1

    def test_empty_document(self):
        loaded = load_docling_document(_FakeDoclingDocument([]), filename="e.pdf")
        assert loaded.pages == []
        assert loaded.page_count == 0
