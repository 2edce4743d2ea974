from decimal import Decimal

from fastapi.testclient import TestClient

from incentives.models.db.enums import UserRole


def _sale(seller, campaign, quantity, order_number=None):
    return {
        "seller_id": seller.id,
        "campaign_id": campaign.id,
        "product_name": "Lente BlueProtect 1.67",
        "product_code": "BP-167",
        "sale_value": "890.00",
        "quantity": quantity,
        "order_number": order_number,
    }


def test_sale_line_submission(client: TestClient, auth_header, admin, seller, campaign_factory):
    campaign = campaign_factory()

    r = client.post("/api/v1/sales/", json=_sale(seller, campaign, 6, "PED-100"), headers=auth_header(admin))
    assert r.status_code == 200, r.text
    data = r.json()["data"]
    assert data["outcome"] == "CREDITADO"
    assert data["completed_cards"] == [1]
    assert data["active_card"] == 2
    assert data["rewards"][0]["coins"] == 2500
    assert data["rewards"][0]["commission_amount"] == "225.00"

    again = client.post("/api/v1/sales/", json=_sale(seller, campaign, 6, "PED-100"), headers=auth_header(admin))
    assert again.json()["data"]["outcome"] == "DUPLICADO"

    forbidden = client.post("/api/v1/sales/", json=_sale(seller, campaign, 1), headers=auth_header(seller))
    assert forbidden.status_code == 403

    missing = client.post("/api/v1/sales/", json={**_sale(seller, campaign, 1), "campaign_id": 999999},
                          headers=auth_header(admin))
    assert missing.status_code == 404

    invalid = client.post("/api/v1/sales/", json={**_sale(seller, campaign, 1), "quantity": 0},
                          headers=auth_header(admin))
    assert invalid.status_code == 422


def test_progress_visibility(client: TestClient, auth_header, admin, seller, manager, user_factory, campaign_factory):
    campaign = campaign_factory()
    client.post("/api/v1/sales/", json=_sale(seller, campaign, 7), headers=auth_header(admin))

    mine = client.get(f"/api/v1/progress/campaigns/{campaign.id}/me", headers=auth_header(seller))
    assert mine.status_code == 200, mine.text
    snapshot = mine.json()["data"]
    assert snapshot["active_card"] == 2
    assert snapshot["completed_cards"] == 1
    assert snapshot["seller_id"] == seller.id

    team_url = f"/api/v1/progress/campaigns/{campaign.id}/sellers/{seller.id}"
    assert client.get(team_url, headers=auth_header(manager)).json()["data"]["active_card"] == 2
    assert client.get(team_url, headers=auth_header(admin)).status_code == 200

    other_manager = user_factory(UserRole.MANAGER)
    assert client.get(team_url, headers=auth_header(other_manager)).status_code == 403
    assert client.get(f"/api/v1/progress/campaigns/{campaign.id}/sellers/{manager.id}",
                      headers=auth_header(admin)).status_code == 404
    assert client.get(f"/api/v1/progress/campaigns/{campaign.id}/me", headers=auth_header(manager)).status_code == 403


def test_prize_catalog_and_redemption_flow(client: TestClient, auth_header, admin, user_factory, db_session):
    created = client.post(
        "/api/v1/prizes/",
        json={"name": "Vale-presente", "coin_cost": 400, "stock": 1},
        headers=auth_header(admin),
    )
    assert created.status_code == 201, created.text
    prize_id = created.json()["id"]

    seller = user_factory(UserRole.SELLER, coin_balance=1000)
    neighbour = user_factory(UserRole.SELLER, coin_balance=1000)
    catalog = client.get("/api/v1/prizes/", headers=auth_header(seller)).json()
    assert prize_id in [p["id"] for p in catalog]

    redeemed = client.post("/api/v1/redemptions/", json={"prize_id": prize_id}, headers=auth_header(seller))
    assert redeemed.status_code == 201, redeemed.text
    assert redeemed.json()["status"] == "SOLICITADO"
    redemption_id = redeemed.json()["id"]

    me = client.get("/api/v1/users/me", headers=auth_header(seller)).json()
    assert me["coin_balance"] == 600

    sold_out = client.post("/api/v1/redemptions/", json={"prize_id": prize_id}, headers=auth_header(neighbour))
    assert sold_out.status_code == 409

    # Sellers only ever see their own redemptions
    peek = client.get("/api/v1/redemptions/", params={"seller_id": seller.id}, headers=auth_header(neighbour))
    assert peek.json() == []
    assert [r["id"] for r in client.get("/api/v1/redemptions/", headers=auth_header(seller)).json()] == [redemption_id]

    short = client.post(f"/api/v1/redemptions/{redemption_id}/cancel", json={"reason": "curto"},
                        headers=auth_header(admin))
    assert short.status_code == 400

    sent = client.post(f"/api/v1/redemptions/{redemption_id}/send", headers=auth_header(admin))
    assert sent.status_code == 200
    assert sent.json()["status"] == "ENVIADO"
    assert client.post(f"/api/v1/redemptions/{redemption_id}/send", headers=auth_header(admin)).status_code == 409
    late_cancel = client.post(f"/api/v1/redemptions/{redemption_id}/cancel",
                              json={"reason": "Cliente desistiu da troca"}, headers=auth_header(admin))
    assert late_cancel.status_code == 409
    assert client.post("/api/v1/redemptions/999999/send", headers=auth_header(admin)).status_code == 404

    filtered = client.get("/api/v1/redemptions/", params={"status": "ENVIADO"}, headers=auth_header(admin)).json()
    assert redemption_id in [r["id"] for r in filtered]


def test_redemption_with_insufficient_balance(client: TestClient, auth_header, user_factory, prize_factory):
    poor = user_factory(UserRole.SELLER, coin_balance=10)
    prize = prize_factory(coin_cost=300)
    r = client.post("/api/v1/redemptions/", json={"prize_id": prize.id}, headers=auth_header(poor))
    assert r.status_code == 400
    assert client.get("/api/v1/users/me", headers=auth_header(poor)).json()["coin_balance"] == 10


def test_ledger_listing_kpis_and_payment(client: TestClient, auth_header, admin, seller, manager, campaign_factory):
    campaign = campaign_factory()
    client.post("/api/v1/sales/", json=_sale(seller, campaign, 10), headers=auth_header(admin))

    headers = auth_header(admin)
    entries = client.get("/api/v1/ledger/", params={"campaign_id": campaign.id}, headers=headers).json()
    assert len(entries) == 4
    seller_entries = client.get(
        "/api/v1/ledger/", params={"beneficiary_id": seller.id, "entry_type": "VENDEDOR"}, headers=headers
    ).json()
    assert [Decimal(e["amount"]) for e in seller_entries] == [Decimal("1500.00")] * 2
    manager_entries = client.get(
        "/api/v1/ledger/", params={"beneficiary_id": manager.id, "status": "PENDENTE"}, headers=headers
    ).json()
    assert len(manager_entries) == 2

    assert client.get("/api/v1/ledger/", headers=auth_header(seller)).status_code == 403
    bad_range = client.get("/api/v1/ledger/", params={"date_from": "2026-03-10", "date_to": "2026-03-01"},
                           headers=headers)
    assert bad_range.status_code == 400

    kpis = client.get("/api/v1/ledger/kpis", params={"beneficiary_id": seller.id}, headers=headers).json()
    assert Decimal(kpis["pending_total"]) == Decimal("3000.00")
    assert kpis["pending_count"] == 2

    first, second = seller_entries
    paid = client.post(f"/api/v1/ledger/{first['id']}/pay", json={"notes": "PIX"}, headers=headers)
    assert paid.status_code == 200, paid.text
    assert paid.json()["status"] == "PAGO"
    assert paid.json()["notes"] == "PIX"
    assert client.post(f"/api/v1/ledger/{first['id']}/pay", headers=headers).status_code == 409

    batch = client.post("/api/v1/ledger/pay", json={"entry_ids": [first["id"], second["id"]]}, headers=headers)
    assert batch.status_code == 409
    still_pending = client.get(
        "/api/v1/ledger/", params={"beneficiary_id": seller.id, "status": "PENDENTE"}, headers=headers
    ).json()
    assert [e["id"] for e in still_pending] == [second["id"]]

    manager_ids = [e["id"] for e in manager_entries]
    batch = client.post("/api/v1/ledger/pay", json={"entry_ids": manager_ids, "notes": "Lote"}, headers=headers)
    assert batch.status_code == 200, batch.text
    assert sorted(batch.json()["data"]["entry_ids"]) == sorted(manager_ids)
    assert Decimal(batch.json()["data"]["total"]) == Decimal("450.00")

    kpis = client.get("/api/v1/ledger/kpis", params={"beneficiary_id": manager.id}, headers=headers).json()
    assert Decimal(kpis["pending_total"]) == Decimal("0")
    assert Decimal(kpis["paid_last_window_total"]) == Decimal("450.00")
