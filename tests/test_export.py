"""Tests for the printable view: HTML preview, PNG capture, PDF export and re-import"""

import io
from decimal import Decimal

import pytest
from PIL import Image

from goyna.export import (
    ExportError,
    build_pdf_bytes,
    capture_png,
    decode_payload,
    encode_payload,
    export_filename,
    export_image,
    read_invoice_from_pdf,
    render_preview_html,
)
from goyna.models import DiscountType, LineItem
from tests.conftest import make_record


@pytest.fixture
def discounted_record():
    return make_record(
        "INV-0012",
        name="Farzana <Shop>",
        items=[
            LineItem(description="Kundan necklace set", quantity=1, price=Decimal("1450")),
            LineItem(description="Oxidised jhumka", quantity=2, price=Decimal("275.50")),
        ],
        discount_type=DiscountType.PERCENTAGE,
        discount_value=Decimal("10"),
        customer_address="House 12, Road 5\nDhanmondi, Dhaka",
        customer_phone="01700-000000",
        notes="Half paid in advance.",
    )


class TestFilename:
    def test_png_name(self, sample_record):
        assert export_filename(sample_record) == "G-Te-Goyna-Invoice-INV-0001.png"

    def test_pdf_name(self, sample_record):
        assert export_filename(sample_record, "pdf") == "G-Te-Goyna-Invoice-INV-0001.pdf"


class TestPreviewHtml:
    def test_contains_invoice_fields(self, discounted_record):
        page = render_preview_html(discounted_record)

        assert "INV-0012" in page
        assert "15/03/2024" in page
        assert "Kundan necklace set" in page
        assert "Discount (10%)" in page
        assert "2,001.00" in page  # subtotal
        assert "1,800.90" in page  # total
        assert "Half paid in advance." in page
        assert "Terms and Conditions" in page

    def test_escapes_user_text(self, discounted_record):
        page = render_preview_html(discounted_record)
        assert "Farzana &lt;Shop&gt;" in page
        assert "<Shop>" not in page

    def test_no_discount_row_without_discount(self, sample_record):
        assert "Discount" not in render_preview_html(sample_record)


class TestCapturePng:
    def test_produces_white_png(self, discounted_record):
        data = capture_png(discounted_record, scale=1)

        assert data[:8] == b"\x89PNG\r\n\x1a\n"
        img = Image.open(io.BytesIO(data))
        assert img.width == 800
        assert img.getpixel((0, 0)) == (255, 255, 255)

    def test_scale_doubles_width(self, sample_record):
        img = Image.open(io.BytesIO(capture_png(sample_record, scale=2)))
        assert img.width == 1600


class TestExportImage:
    def test_resolves_to_png_bytes(self, sample_record):
        fut = export_image(sample_record, delay=0, capture=lambda rec, totals: b"png:" + rec.invoice_number.encode())

        assert fut.result(timeout=1) == b"png:INV-0001"

    def test_renders_snapshot_taken_at_call_time(self, sample_record):
        fut = export_image(sample_record, delay=0.05, capture=lambda rec, totals: rec.customer_name.encode())
        sample_record.customer_name = "edited later"

        assert fut.result(timeout=2) == b"Rupa Akter"

    def test_capture_failure_surfaces_as_export_error(self, sample_record):
        def broken(rec, totals):
            raise RuntimeError("canvas exploded")

        fut = export_image(sample_record, delay=0, capture=broken)

        with pytest.raises(ExportError):
            fut.result(timeout=1)


class TestPdf:
    def test_pdf_roundtrip_restores_invoice(self, discounted_record):
        """
        Given: A PDF exported by this app
        When: It is read back
        Then: The embedded invoice matches the original
        """
        pdf = build_pdf_bytes(discounted_record)

        assert pdf.startswith(b"%PDF")
        assert read_invoice_from_pdf(pdf).to_dict() == discounted_record.to_dict()

    def test_not_a_pdf(self):
        with pytest.raises(ExportError):
            read_invoice_from_pdf(b"definitely not a pdf")

    def test_payload_codec(self, sample_record):
        payload = encode_payload(sample_record)
        spaced = " ".join(payload[i:i + 10] for i in range(0, len(payload), 10))

        assert decode_payload(spaced).to_dict() == sample_record.to_dict()

    def test_bad_payload(self):
        with pytest.raises(ExportError):
            decode_payload("AAAA")
