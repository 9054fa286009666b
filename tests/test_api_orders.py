from __future__ import annotations

import foodcoop.persistence.pg as pg
from foodcoop.persistence.models import OrdergroupModel


def test_order_workflow_over_http(client, seeded):
    catalog = seeded
    group_id = seeded["ordergroup_id"]
    headers = {"X-Actor-Id": "coordinator-1"}

    created = client.post(
        "/orders",
        json={"supplier_id": catalog["supplier_id"], "starts": "2026-03-01T09:00:00Z", "article_ids": catalog["article_ids"]},
        headers=headers,
    )
    assert created.status_code == 201
    order_id = created.json()["id"]

    submitted = client.post(
        f"/orders/{order_id}/group-orders",
        json={"ordergroup_id": group_id, "items": [{"article_id": catalog["carrots"], "quantity": 5}]},
    )
    assert submitted.status_code == 200
    assert submitted.json()["price_cents"] == 5 * 118

    listing = client.get("/orders", params={"state": "open"})
    assert [o["id"] for o in listing.json()["orders"]] == [order_id]

    finished = client.post(f"/orders/{order_id}/finish", headers=headers)
    assert finished.status_code == 200
    assert finished.json()["finished"] is True
    assert finished.json()["order"]["updated_by"] == "coordinator-1"

    again = client.post(f"/orders/{order_id}/finish", headers=headers)
    assert again.json()["finished"] is False

    no_profit = client.get(f"/orders/{order_id}/profit")
    assert no_profit.json()["profit_cents"] is None
    assert no_profit.json()["has_invoice"] is False

    missing_invoice = client.post(f"/orders/{order_id}/balance", headers=headers)
    assert missing_invoice.status_code == 409
    assert missing_invoice.json()["error"] == "invoice_missing"

    invoice = client.post(f"/orders/{order_id}/invoice", json={"amount_cents": 500})
    assert invoice.status_code == 201

    sums = client.get(f"/orders/{order_id}/sums").json()["sums"]
    assert sums["groups"] == 590
    assert sums["clear"] == 500
    assert client.get(f"/orders/{order_id}/sums", params={"basis": "fc"}).json()["sums"] == {"fc": 590}
    assert client.get(f"/orders/{order_id}/profit").json()["profit_cents"] == 90

    balanced = client.post(f"/orders/{order_id}/balance", headers=headers)
    assert balanced.status_code == 200
    assert [tx["amount_cents"] for tx in balanced.json()["transactions"]] == [-590]
    assert balanced.json()["order"]["booked"] is True

    booked_again = client.post(f"/orders/{order_id}/balance", headers=headers)
    assert booked_again.status_code == 409
    assert "already booked" in booked_again.json()["detail"]

    with pg.session_scope() as session:
        assert session.get(OrdergroupModel, group_id).account_balance_cents == 5000 - 590


def test_create_order_validation_over_http(client):
    response = client.post("/orders", json={"starts": "2026-03-01T09:00:00Z", "article_ids": []})
    assert response.status_code == 422
    errors = response.json()["errors"]
    assert "supplier_id" in errors
    assert "article_ids" in errors


def test_stale_version_over_http(client, seeded):
    catalog = seeded
    created = client.post(
        "/orders",
        json={"supplier_id": catalog["supplier_id"], "starts": "2026-03-01T09:00:00Z", "article_ids": catalog["article_ids"]},
    ).json()

    response = client.post(f"/orders/{created['id']}/finish", json={"expected_version": created["version"] + 5})
    assert response.status_code == 409
    assert response.json()["retryable"] is True


def test_unknown_order_is_404(client):
    assert client.get("/orders/987654").status_code == 404


def test_articles_grouped_by_category_over_http(client, seeded):
    catalog = seeded
    created = client.post(
        "/orders",
        json={"supplier_id": catalog["supplier_id"], "starts": "2026-03-01T09:00:00Z", "article_ids": catalog["article_ids"]},
    ).json()

    body = client.get(f"/orders/{created['id']}/articles").json()
    assert [c["category"] for c in body["categories"]] == ["Dairy", "Fruits", "Vegetables"]
    assert body["categories"][2]["articles"][0]["fc_price_cents"] == 118


def test_comments_and_neighbours_over_http(client, seeded):
    catalog = seeded
    ids = []
    for ends in ("2026-03-05T18:00:00Z", "2026-03-12T18:00:00Z"):
        ids.append(
            client.post(
                "/orders",
                json={
                    "supplier_id": catalog["supplier_id"],
                    "starts": "2026-03-01T09:00:00Z",
                    "ends": ends,
                    "article_ids": catalog["article_ids"],
                },
            ).json()["id"]
        )

    posted = client.post(f"/orders/{ids[0]}/comments", json={"text": "Bring boxes"}, headers={"X-Actor-Id": "alice"})
    assert posted.status_code == 201
    assert posted.json()["created_by"] == "alice"
    assert client.post(f"/orders/{ids[0]}/comments", json={"text": "   "}).status_code == 422
    assert [c["text"] for c in client.get(f"/orders/{ids[0]}/comments").json()["comments"]] == ["Bring boxes"]

    neighbours = client.get(f"/orders/{ids[0]}/neighbours").json()
    assert neighbours == {"order_id": ids[0], "previous_id": None, "next_id": ids[1]}
