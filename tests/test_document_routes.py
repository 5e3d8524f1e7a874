from io import BytesIO

from werkzeug.datastructures import FileStorage

from dms.models import PurchaseInvoice

PDF_BYTES = b"%PDF-1.4 fake invoice"


def _file(name, content=PDF_BYTES):
    return FileStorage(BytesIO(content), filename=name, content_type="application/pdf")


async def _upload(client, headers, name="invoice.pdf", **form):
    fields = {"buyer_name": "AutoLab Ltd", "registration": "ab12 cde", "seller_type": "dealer", **form}
    return await client.post("/api/purchase-invoices/upload", form=fields, files={"file": _file(name)},
                             headers=headers)


async def test_upload_download_and_soft_delete(client, admin_headers, db_session):
    response = await _upload(client, admin_headers, outstanding_finance="true")

    assert response.status_code == 201, await response.get_data(as_text=True)
    document = await response.get_json()
    assert document["registration"] == "AB12 CDE"
    assert document["document_type"] == "pdf"
    assert document["document_size"] == len(PDF_BYTES)
    assert document["outstanding_finance"] is True
    assert "document_path" not in document

    download = await client.get(f"/api/purchase-invoices/{document['id']}/download", headers=admin_headers)
    assert download.status_code == 200
    assert await download.get_data() == PDF_BYTES
    assert 'filename="invoice.pdf"' in download.headers["Content-Disposition"]

    assert (await client.delete(f"/api/purchase-invoices/{document['id']}", headers=admin_headers)).status_code == 200
    assert (await client.get(f"/api/purchase-invoices/{document['id']}", headers=admin_headers)).status_code == 404
    assert db_session.get(PurchaseInvoice, document["id"]).status == "deleted"

    listing = await (await client.get("/api/purchase-invoices", headers=admin_headers)).get_json()
    assert listing == []


async def test_upload_rejects_unsupported_files(client, admin_headers):
    response = await _upload(client, admin_headers, name="virus.exe")
    assert response.status_code == 400
    assert (await response.get_json())["error"] == "Unsupported document type"


async def test_upload_requires_buyer_name(client, admin_headers):
    response = await client.post("/api/purchase-invoices/upload", form={"registration": "X1"},
                                 files={"file": _file("a.pdf")}, headers=admin_headers)
    assert response.status_code == 400


async def test_salesperson_cannot_upload(client, sales_headers):
    assert (await _upload(client, sales_headers)).status_code == 403


async def test_purchase_invoice_stats_group_by_seller(client, admin_headers):
    await _upload(client, admin_headers)
    await _upload(client, admin_headers, name="two.pdf", seller_type="auction")

    stats = await (await client.get("/api/purchase-invoices/stats", headers=admin_headers)).get_json()

    assert stats["totalInvoices"] == 2
    assert stats["totalBySellerType"] == {"dealer": 1, "auction": 1}


async def test_sales_invoice_needs_seller_and_customer(client, admin_headers):
    response = await client.post("/api/sales-invoices/upload", form={"seller_name": "AutoLab"},
                                 files={"file": _file("s.pdf")}, headers=admin_headers)
    assert response.status_code == 400

    response = await client.post("/api/sales-invoices/upload",
                                 form={"seller_name": "AutoLab", "customer_name": "Jane Doe"},
                                 files={"file": _file("s.pdf")}, headers=admin_headers)
    assert response.status_code == 201


async def test_invoice_totals_are_computed(client, admin_headers):
    response = await client.post("/api/invoices", json={
        "invoice_no": "INV-001",
        "registration": "AB12 CDE",
        "deposit_paid": "100",
        "items": [
            {"description": "Vehicle", "qty": 1, "unit_price": "5000"},
            {"description": "Warranty", "qty": 1, "unit_price": "250", "actual_price": "200"},
        ],
        "condition": {"front_paint": 2},
    }, headers=admin_headers)

    assert response.status_code == 201, await response.get_data(as_text=True)
    invoice = await response.get_json()
    assert invoice["sub_total"] == 5200.0
    assert invoice["vat_at_20"] == 1040.0
    assert invoice["total"] == 6240.0
    assert invoice["balance_due"] == 6140.0
    assert len(invoice["items"]) == 2
    assert invoice["condition"]["front_paint"] == 2

    duplicate = await client.post("/api/invoices", json={"invoice_no": "INV-001"}, headers=admin_headers)
    assert duplicate.status_code == 409
