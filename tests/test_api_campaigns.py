import secrets
from datetime import timedelta

from fastapi.testclient import TestClient

from incentives import main
from incentives.models.db import User
from incentives.models.db.enums import UserRole
from incentives.utils.time import utc_now


def test_health_endpoints(client: TestClient):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "healthy"
    assert "X-Request-ID" in r.headers
    detailed = client.get("/health/detailed").json()
    assert detailed["checks"]["database"] == "healthy"
    assert detailed["system_timezone"] == "America/Sao_Paulo"


def test_missing_or_unknown_api_key_rejected(client: TestClient):
    r = client.get("/api/v1/campaigns/")
    assert r.status_code in (401, 403)
    r = client.get("/api/v1/campaigns/", headers={"Authorization": "Bearer ven_not_a_real_key"})
    assert r.status_code == 401
    assert r.json()["success"] is False


def test_campaign_creation_requires_admin(client: TestClient, auth_header, seller, manager, campaign_payload):
    for user in (seller, manager):
        r = client.post("/api/v1/campaigns/", json=campaign_payload(), headers=auth_header(user))
        assert r.status_code == 403


def test_create_campaign_returns_full_tree(client: TestClient, auth_header, admin, campaign_payload):
    payload = campaign_payload(tags=[" Lentes ", "lentes", "Premium"], title="  Campanha   Premium  ")
    r = client.post("/api/v1/campaigns/", json=payload, headers=auth_header(admin))
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["title"] == "Campanha Premium"
    assert body["tags"] == ["lentes", "premium"]
    assert body["status"] == "ATIVA"
    assert [c["number"] for c in body["cards"]] == [1, 2, 3]
    condition = body["cards"][0]["requirements"][0]["conditions"][0]
    assert condition == {"id": condition["id"], "field": "NOME_PRODUTO", "operator": "CONTEM", "value": "lente"}

    detail = client.get(f"/api/v1/campaigns/{body['id']}", headers=auth_header(admin))
    assert detail.status_code == 200
    assert detail.json()["id"] == body["id"]


def test_invalid_campaign_reports_every_failure(client: TestClient, auth_header, admin, campaign_payload, card_def):
    payload = campaign_payload(
        title="ab",
        coin_reward=10,
        real_reward="50.00",
        cards=[card_def(1, operator="MAIOR_QUE", value="10")],
    )
    r = client.post("/api/v1/campaigns/", json=payload, headers=auth_header(admin))
    assert r.status_code == 422
    body = r.json()
    assert body["success"] is False
    found = {e["field"] for e in body["errors"]}
    assert {"title", "coin_reward", "cards[0].requirements[0].conditions[0].operator"} <= found
    assert all({"field", "message", "category"} <= set(e) for e in body["errors"])
    assert set(body) == {"success", "message", "errors", "request_id"}


def test_definition_error_shape_is_documented(client: TestClient):
    doc = client.get("/api/v1/openapi.json").json()
    schemas = doc["components"]["schemas"]
    assert {"ValidationErrorResponse", "FieldError"} <= set(schemas)
    assert set(schemas["FieldError"]["properties"]) == {"field", "message", "category"}

    routes = [
        ("/api/v1/campaigns/", "post"),
        ("/api/v1/campaigns/{campaign_id}/events", "post"),
        ("/api/v1/campaigns/{campaign_id}/events/{event_id}", "patch"),
        ("/api/v1/campaigns/{campaign_id}/events/{event_id}/toggle", "post"),
    ]
    for path, method in routes:
        documented = doc["paths"][path][method]["responses"]["422"]
        ref = documented["content"]["application/json"]["schema"]["$ref"]
        assert ref == "#/components/schemas/ValidationErrorResponse", (path, method)


def test_malformed_payload_uses_request_validation(client: TestClient, auth_header, admin):
    r = client.post("/api/v1/campaigns/", json={"title": "x"}, headers=auth_header(admin))
    assert r.status_code == 422
    assert r.json()["message"] == "Request validation failed"
    assert r.json()["details"]


def test_campaign_targeting_controls_visibility(
    client: TestClient, auth_header, admin, campaign_payload, optician_factory, user_factory
):
    head_office = optician_factory()
    branch = optician_factory(parent=head_office)
    elsewhere = optician_factory()
    payload = campaign_payload(all_opticians=False, target_optician_ids=[head_office.id])
    created = client.post("/api/v1/campaigns/", json=payload, headers=auth_header(admin))
    assert created.status_code == 201, created.text
    campaign_id = created.json()["id"]
    assert created.json()["target_optician_ids"] == [head_office.id]

    insider = user_factory(UserRole.SELLER, optician=branch)
    outsider = user_factory(UserRole.SELLER, optician=elsewhere)

    listed = client.get("/api/v1/campaigns/", headers=auth_header(insider)).json()
    assert campaign_id in [c["id"] for c in listed]
    listed = client.get("/api/v1/campaigns/", headers=auth_header(outsider)).json()
    assert campaign_id not in [c["id"] for c in listed]
    assert client.get(f"/api/v1/campaigns/{campaign_id}", headers=auth_header(outsider)).status_code == 403
    assert client.get("/api/v1/campaigns/999999", headers=auth_header(admin)).status_code == 404


def test_unknown_target_optician_is_rejected(client: TestClient, auth_header, admin, campaign_payload):
    payload = campaign_payload(all_opticians=False, target_optician_ids=[987654])
    r = client.post("/api/v1/campaigns/", json=payload, headers=auth_header(admin))
    assert r.status_code == 422
    assert [e["field"] for e in r.json()["errors"]] == ["target_optician_ids"]


def _event(name, start, hours, multiplier="2.0"):
    return {
        "name": name,
        "multiplier": multiplier,
        "start_at": start.isoformat(),
        "end_at": (start + timedelta(hours=hours)).isoformat(),
    }


def test_special_event_lifecycle(client: TestClient, auth_header, admin, seller, campaign_factory):
    campaign = campaign_factory()
    base = f"/api/v1/campaigns/{campaign.id}/events"
    start = utc_now() + timedelta(days=2)

    first = client.post(base, json=_event("Manhã", start, 4), headers=auth_header(admin))
    assert first.status_code == 201, first.text
    assert first.json()["state"] == "AGENDADO"
    assert first.json()["highlight_color"] == "#FF5733"
    event_id = first.json()["id"]

    touching = client.post(base, json=_event("Tarde", start + timedelta(hours=4), 4), headers=auth_header(admin))
    assert touching.status_code == 201, touching.text

    overlapping = client.post(base, json=_event("Noite", start + timedelta(hours=3), 2), headers=auth_header(admin))
    assert overlapping.status_code == 422
    assert overlapping.json()["errors"][0]["category"] == "event"

    too_soon = client.post(base, json=_event("Agora", utc_now() + timedelta(minutes=10), 2), headers=auth_header(admin))
    assert too_soon.status_code == 422

    assert client.post(base, json=_event("Manhã 2", start + timedelta(days=5), 2), headers=auth_header(seller)).status_code == 403

    updated = client.patch(f"{base}/{event_id}", json={"multiplier": "3.5"}, headers=auth_header(admin))
    assert updated.status_code == 200, updated.text
    assert float(updated.json()["multiplier"]) == 3.5

    paused = client.post(f"{base}/{event_id}/toggle", json={"active": False}, headers=auth_header(admin))
    assert paused.json()["state"] == "PAUSADO"

    # While paused its window no longer blocks other events
    filler = client.post(base, json=_event("Noite", start + timedelta(hours=1), 2), headers=auth_header(admin))
    assert filler.status_code == 201, filler.text
    resumed = client.post(f"{base}/{event_id}/toggle", json={"active": True}, headers=auth_header(admin))
    assert resumed.status_code == 422

    listed = client.get(base, headers=auth_header(seller))
    assert [e["name"] for e in listed.json()] == ["Manhã", "Noite", "Tarde"]
    assert client.patch(f"{base}/999999", json={"name": "x"}, headers=auth_header(admin)).status_code == 404


def test_multiplier_endpoint(client: TestClient, auth_header, admin, seller, campaign_factory):
    start = utc_now() + timedelta(days=1)
    event_start = start + timedelta(days=1)
    campaign = campaign_factory(
        start_at=start.isoformat(),
        end_at=(start + timedelta(days=30)).isoformat(),
        events=[_event("Black Friday", event_start, 24, multiplier="2.5")],
    )
    url = f"/api/v1/campaigns/{campaign.id}/multiplier"

    now_value = client.get(url, headers=auth_header(seller)).json()["data"]
    assert now_value["multiplier"] == "1.0"
    assert now_value["active_event_ids"] == []

    inside = (event_start + timedelta(hours=2)).isoformat()
    during = client.get(url, params={"at": inside}, headers=auth_header(seller)).json()["data"]
    assert float(during["multiplier"]) == 2.5
    assert len(during["active_event_ids"]) == 1

    # Naive instants are read in the system timezone (UTC-3), so this wall time is two hours into the event
    local_naive = (event_start - timedelta(hours=1)).replace(tzinfo=None)
    before = client.get(url, params={"at": local_naive.isoformat()}, headers=auth_header(seller)).json()["data"]
    assert float(before["multiplier"]) == 2.5


def test_user_and_optician_management(client: TestClient, auth_header, admin):
    headers = auth_header(admin)
    cnpj = secrets.token_hex(7)
    optician = client.post("/api/v1/users/opticians", json={"name": "Ótica Centro", "cnpj": cnpj}, headers=headers)
    assert optician.status_code == 201, optician.text
    optician_id = optician.json()["id"]
    duplicate = client.post("/api/v1/users/opticians", json={"name": "Outra", "cnpj": cnpj}, headers=headers)
    assert duplicate.status_code == 409
    orphan = client.post(
        "/api/v1/users/opticians", json={"name": "Filial", "cnpj": cnpj[::-1], "parent_id": 999999}, headers=headers
    )
    assert orphan.status_code == 404

    email = f"gerente_{optician_id}_{cnpj}@example.com"
    mgr = client.post(
        "/api/v1/users/",
        json={"name": "Gerente", "email": email, "role": "GERENTE", "optician_id": optician_id},
        headers=headers,
    )
    assert mgr.status_code == 201, mgr.text
    assert mgr.json()["api_key"].startswith("ger_")
    assert client.post("/api/v1/users/", json={"name": "Gerente", "email": email, "role": "GERENTE"},
                       headers=headers).status_code == 409

    seller = client.post(
        "/api/v1/users/",
        json={"name": "Vendedora", "email": f"v_{email}", "role": "VENDEDOR",
              "optician_id": optician_id, "manager_id": mgr.json()["id"]},
        headers=headers,
    )
    assert seller.status_code == 201, seller.text
    seller_key = seller.json()["api_key"]
    assert seller_key.startswith("ven_")
    assert len(seller_key) == 36

    me = client.get("/api/v1/users/me", headers={"Authorization": f"Bearer {seller_key}"})
    assert me.status_code == 200
    assert me.json()["manager_id"] == mgr.json()["id"]
    assert me.json()["coin_balance"] == 0

    not_a_manager = client.post(
        "/api/v1/users/",
        json={"name": "X", "email": f"x_{email}", "role": "VENDEDOR", "manager_id": seller.json()["id"]},
        headers=headers,
    )
    assert not_a_manager.status_code == 400
    manager_on_manager = client.post(
        "/api/v1/users/",
        json={"name": "Y", "email": f"y_{email}", "role": "GERENTE", "manager_id": mgr.json()["id"]},
        headers=headers,
    )
    assert manager_on_manager.status_code == 422

    listing = client.get("/api/v1/users/", params={"limit": 0}, headers=headers)
    assert listing.status_code == 400


def test_bootstrap_admin_is_skipped_once_an_admin_exists(db_session, admin, monkeypatch):
    monkeypatch.setattr(main, "BOOTSTRAP_ADMIN_KEY", "adm_bootstrap_key_for_tests")
    main.ensure_bootstrap_admin()
    assert db_session.query(User).filter(User.api_key == "adm_bootstrap_key_for_tests").first() is None
