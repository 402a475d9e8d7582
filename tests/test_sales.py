import pytest

from conftest import make_session
from utils.settlement import settle_payment


@pytest.fixture
def settled(catalog, gateway, notifier):
    sessions = [
        make_session(session_id="sess_1", order_number="ORDER-1", lines=(("p1", 2, 7500),), amount_total=15000),
        make_session(session_id="sess_2", order_number="ORDER-2",
                     lines=(("p3", 5, 4000), ("p2", 1, 2000)), amount_total=22000),
        make_session(session_id="sess_3", order_number="ORDER-3", lines=(("p1", 1, 7500),), amount_total=7500),
    ]
    for s in sessions:
        gateway.add(s)
    return [settle_payment(s.id, catalog, gateway=gateway, notifier=notifier) for s in sessions]


def test_sales_overview_for_all_vendors(client, settled):
    r = client.get("/api/sales")

    assert r.status_code == 200
    body = r.json()
    overview = body["overview"]
    # p2 has no vendor, so three sales: 150 + 75 (v1) and 200 (v2)
    assert overview["totalSalesCount"] == 3
    assert overview["totalSalesAmount"] == pytest.approx(425.0)
    assert overview["totalCommission"] == pytest.approx(42.5)
    assert [v["vendorId"] for v in overview["topVendors"]] == ["v1", "v2"]
    assert overview["topVendors"][0]["totalSales"] == pytest.approx(225.0)
    assert overview["topVendors"][0]["salesCount"] == 2
    assert overview["topVendors"][1]["salesCount"] == 1
    assert body["pagination"]["total"] == 3


def test_sales_scoped_to_vendor(client, settled):
    body = client.get("/api/sales", params={"vendor_id": "v2"}).json()

    assert body["overview"]["totalSalesCount"] == 1
    assert body["overview"]["totalSalesAmount"] == pytest.approx(200.0)
    assert body["overview"]["totalCommission"] == pytest.approx(20.0)
    assert body["overview"]["topVendors"] == []
    sale = body["sales"][0]
    assert sale["net"] == pytest.approx(180.0)
    assert sale["order"]["orderNumber"] == "ORDER-2"
    assert sale["order"]["paymentStatus"] == "COMPLETED"


def test_sales_pagination(client, settled):
    body = client.get("/api/sales", params={"limit": 2}).json()

    assert len(body["sales"]) == 2
    assert body["pagination"] == {"total": 3, "pages": 2, "page": 1, "limit": 2}


def test_sale_detail_includes_order_items(client, settled):
    listing = client.get("/api/sales", params={"vendor_id": "v2"}).json()
    sale_id = listing["sales"][0]["id"]

    r = client.get(f"/api/sales/{sale_id}")

    assert r.status_code == 200
    body = r.json()
    assert body["productTitle"] == "Linen Towel"
    assert body["productQty"] == 5
    assert body["commission"] == pytest.approx(20.0)
    assert {i["productId"] for i in body["order"]["orderItems"]} == {"p3", "p2"}


def test_missing_sale(client, settled):
    assert client.get("/api/sales/9999").status_code == 404
