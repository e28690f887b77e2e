#!/usr/bin/env python3
"""
Generate a small two-page PDF for trying out the upload → chat flow.

Page 1 describes a fictional product, page 2 its warranty terms, so a
question like "How long is the warranty?" should retrieve the page-2
chunk first.

Usage:
    python scripts/generate_sample_pdf.py [output_path]

Output:
    sample.pdf (default)

Then:
    curl -F pdf=@sample.pdf http://localhost:8000/upload/pdf
    curl "http://localhost:8000/chat?message=How+long+is+the+warranty"
"""

import sys
from pathlib import Path

from fpdf import FPDF


class SampleDocument(FPDF):
    """Plain document with a running header and page footer."""

    def header(self):
        self.set_font("Helvetica", "B", 10)
        self.set_text_color(100, 100, 100)
        self.cell(0, 8, "Northwind Kettle K2 - Product Sheet", 0, 1, "C")
        self.line(10, self.get_y(), 200, self.get_y())
        self.ln(4)

    def footer(self):
        self.set_y(-15)
        self.set_font("Helvetica", "I", 8)
        self.set_text_color(150, 150, 150)
        self.cell(0, 10, f"Page {self.page_no()}/{{nb}} | Sample document", 0, 0, "C")

    def section_title(self, title: str):
        self.set_font("Helvetica", "B", 14)
        self.set_text_color(0, 0, 0)
        self.ln(6)
        self.cell(0, 10, title, 0, 1)
        self.ln(2)

    def body_text(self, text: str):
        self.set_font("Helvetica", "", 10)
        self.set_text_color(30, 30, 30)
        self.multi_cell(0, 5.5, text)
        self.ln(2)


def generate_sample(output: Path) -> Path:
    pdf = SampleDocument()
    pdf.alias_nb_pages()
    pdf.set_auto_page_break(auto=True, margin=20)

    # Page 1: product overview
    pdf.add_page()
    pdf.section_title("Product Overview")
    pdf.body_text(
        "The Northwind Kettle K2 is a 1.7 litre electric kettle with a "
        "brushed steel body and a 2200 watt heating element. It boils a "
        "full kettle in about four minutes and switches off automatically "
        "when the water reaches boiling point or when the kettle is lifted "
        "from its base."
    )
    pdf.body_text(
        "Five preset temperatures (70, 80, 85, 90 and 100 degrees Celsius) "
        "suit green tea, white tea, coffee and infant formula. A keep-warm "
        "mode holds the selected temperature for thirty minutes."
    )

    # Page 2: warranty
    pdf.add_page()
    pdf.section_title("Warranty and Support")
    pdf.body_text(
        "Every Northwind Kettle K2 carries a two year limited warranty from "
        "the date of purchase. The warranty covers defects in materials and "
        "workmanship. It does not cover limescale damage, accidental drops "
        "or use with a non-original base."
    )
    pdf.body_text(
        "To make a claim, contact support with the serial number printed "
        "under the base and a copy of the receipt. Replacement units ship "
        "within five working days."
    )

    output.parent.mkdir(parents=True, exist_ok=True)
    pdf.output(str(output))
    return output


if __name__ == "__main__":
    target = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("sample.pdf")
    path = generate_sample(target)
    print(f"Generated: {path}")
