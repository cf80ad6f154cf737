import pytest

from invoice_schema import UserConfig, load_invoice
from preview import render_preview
from preview_raster import BASE_WIDTH, rasterize_preview


def test_breakdown_rows_and_amounts(sample_invoice):
    doc = render_preview(sample_invoice)
    assert [(r.label, r.value) for r in doc.breakdown] == [
        ("Subtotal", "€1,000.00"),
        ("IRPF (-15%)", "-€150.00"),
        ("Tax (21%)", "€178.50"),
        ("Total", "€1,028.50"),
    ]
    assert doc.breakdown[-1].emphasis


def test_zero_rate_rows_are_omitted(sample_payload):
    sample_payload["taxRate"] = 0
    sample_payload["irpfRate"] = 0
    doc = render_preview(load_invoice(sample_payload))
    assert [r.label for r in doc.breakdown] == ["Subtotal", "Total"]


def test_service_blocks(sample_invoice):
    doc = render_preview(sample_invoice)
    design = doc.services[0]
    assert design.title == "Design"
    assert design.rate == "€50.00/hr"
    assert [(ln.title, ln.hours, ln.amount) for ln in design.lines] == [
        ("Wireframes", "4", "€200.00"),
        ("Mockups", "6", "€300.00"),
    ]
    assert design.total == "€500.00"


def test_dates_are_spelled_out(sample_invoice):
    doc = render_preview(sample_invoice)
    assert doc.invoice_date == "March 1, 2024"
    assert doc.due_date == "March 31, 2024"


def test_issuer_prefers_invoice_override_over_config(sample_payload):
    config = UserConfig(company_name="Config Co", company_email="hi@config.test", tax_number="B123")
    doc = render_preview(load_invoice(sample_payload), config)
    assert doc.issuer_lines[0] == "Config Co"
    assert "Tax ID: B123" in doc.issuer_lines

    sample_payload["businessName"] = "Override Ltd"
    doc = render_preview(load_invoice(sample_payload), config)
    assert doc.issuer_lines[0] == "Override Ltd"


def test_client_lines_split_address(sample_invoice):
    doc = render_preview(sample_invoice)
    assert doc.client_lines == ["Acme Corp", "billing@acme.test", "1 Main St", "Springfield"]


def test_rasterized_width_follows_scale(sample_invoice):
    doc = render_preview(sample_invoice)
    small = rasterize_preview(doc, scale=1)
    big = rasterize_preview(doc, scale=2)
    assert small.width == BASE_WIDTH
    assert big.width == BASE_WIDTH * 2
    assert big.height > small.height > 0


def test_rasterize_rejects_non_positive_scale(sample_invoice):
    with pytest.raises(ValueError):
        rasterize_preview(render_preview(sample_invoice), scale=0)
