"""HTTP and WebSocket integration tests against the FastAPI app."""

import pytest
from starlette.websockets import WebSocketDisconnect

from homepair.utils.security import hash_token

API = "/api/v1"


def pair_device(client, admin_headers, areas=None, name="Kitchen Tablet"):
    """Run the whole pairing flow and return the completion payload."""
    r = client.post(f"{API}/pairing", headers=admin_headers)
    assert r.status_code == 201, r.text
    session = r.json()

    r = client.post(f"{API}/pairing/{session['id']}/verify", json={
        "pin": session["pin"],
        "device_name": name,
        "device_type": "tablet",
    })
    assert r.status_code == 200, r.text

    r = client.post(f"{API}/pairing/{session['id']}/complete", headers=admin_headers, json={
        "client_name": name,
        "assigned_areas": areas or [],
    })
    assert r.status_code == 200, r.text
    return r.json()


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


# --- Basics ---

def test_health_and_root(client):
    assert client.get(f"{API}/health").json()["status"] == "ok"
    assert client.get("/").json()["status"] == "running"


def test_login(client):
    r = client.post(f"{API}/auth/login", json={"username": "admin", "password": "nope"})
    assert r.status_code == 401
    assert r.json() == {"error": "unauthorized", "message": "Invalid credentials"}
    assert r.headers["WWW-Authenticate"] == "Bearer"


def test_me_for_admin(client, admin_headers):
    r = client.get(f"{API}/auth/me", headers=admin_headers)
    assert r.json()["role"] == "admin"
    assert r.json()["username"] == "admin"


def test_missing_credential_is_401(client):
    r = client.post(f"{API}/pairing")
    assert r.status_code == 401
    assert r.json()["error"] == "unauthorized"


def test_request_validation_is_400(client, admin_headers):
    r = client.post(f"{API}/pairing/pair_x/verify", json={"pin": "123456"})
    assert r.status_code == 400
    assert r.json()["error"] == "validation_error"


# --- Pairing ---

def test_pairing_flow(client, admin_headers):
    r = client.post(f"{API}/pairing", headers=admin_headers)
    session = r.json()
    assert session["status"] == "pending"
    assert session["expires_in"] == 300
    assert len(session["pin"]) == 6

    status = client.get(f"{API}/pairing/{session['id']}").json()
    assert status["status"] == "pending"
    assert "pin" not in status

    r = client.post(f"{API}/pairing/{session['id']}/verify", json={
        "pin": session["pin"], "device_name": "Hall Panel", "device_type": "tablet",
    })
    assert r.json()["status"] == "verified"

    r = client.post(f"{API}/pairing/{session['id']}/verify", json={
        "pin": session["pin"], "device_name": "Hall Panel", "device_type": "tablet",
    })
    assert r.status_code == 401

    r = client.post(f"{API}/pairing/{session['id']}/complete", headers=admin_headers, json={
        "client_name": "Hall Panel", "assigned_areas": ["area_1"],
    })
    done = r.json()
    assert done["assigned_areas"] == ["area_1"]

    token = client.get(f"{API}/client-tokens/{done['token_id']}", headers=admin_headers).json()
    assert token["client_id"] == done["client_id"]

    me = client.get(f"{API}/clients/me", headers=bearer(done["client_token"])).json()
    assert me["id"] == done["client_id"]
    assert me["assigned_areas"] == ["area_1"]

    r = client.post(f"{API}/pairing/{session['id']}/complete", headers=admin_headers, json={
        "client_name": "Hall Panel",
    })
    assert r.status_code == 409


def test_wrong_pin_is_generic_401(client, admin_headers):
    session = client.post(f"{API}/pairing", headers=admin_headers).json()
    wrong = "111111" if session["pin"] != "111111" else "222222"
    r = client.post(f"{API}/pairing/{session['id']}/verify", json={
        "pin": wrong, "device_name": "Phone", "device_type": "mobile",
    })
    assert r.status_code == 401
    assert r.json()["message"] == "Invalid or expired PIN"


def test_bad_device_type_is_400(client, admin_headers):
    session = client.post(f"{API}/pairing", headers=admin_headers).json()
    r = client.post(f"{API}/pairing/{session['id']}/verify", json={
        "pin": session["pin"], "device_name": "Phone", "device_type": "fridge",
    })
    assert r.status_code == 400
    assert r.json()["field"] == "device_type"


def test_verify_is_rate_limited(client, admin_headers):
    session = client.post(f"{API}/pairing", headers=admin_headers).json()
    wrong = "111111" if session["pin"] != "111111" else "222222"
    body = {"pin": wrong, "device_name": "Phone", "device_type": "mobile"}

    codes = [client.post(f"{API}/pairing/{session['id']}/verify", json=body).status_code for _ in range(6)]
    assert codes == [401] * 5 + [429]


def test_successful_verify_resets_attempt_window(client, admin_headers):
    session = client.post(f"{API}/pairing", headers=admin_headers).json()
    wrong = "111111" if session["pin"] != "111111" else "222222"
    bad = {"pin": wrong, "device_name": "Phone", "device_type": "mobile"}

    for _ in range(4):
        assert client.post(f"{API}/pairing/{session['id']}/verify", json=bad).status_code == 401
    r = client.post(f"{API}/pairing/{session['id']}/verify", json={**bad, "pin": session["pin"]})
    assert r.status_code == 200

    codes = [client.post(f"{API}/pairing/{session['id']}/verify", json=bad).status_code for _ in range(6)]
    assert codes == [401] * 5 + [429]


def test_client_cannot_use_admin_routes(client, admin_headers):
    done = pair_device(client, admin_headers)
    r = client.post(f"{API}/pairing", headers=bearer(done["client_token"]))
    assert r.status_code == 403
    assert client.get(f"{API}/clients/me", headers=admin_headers).status_code == 403


def test_cancel_session(client, admin_headers):
    session = client.post(f"{API}/pairing", headers=admin_headers).json()
    assert client.delete(f"{API}/pairing/{session['id']}", headers=admin_headers).status_code == 204
    assert client.get(f"{API}/pairing/{session['id']}").status_code == 404


# --- Tokens ---

def test_issue_list_scope_and_stats(client, admin_headers):
    done = pair_device(client, admin_headers, areas=["area_1"])

    r = client.post(f"{API}/client-tokens", headers=admin_headers, json={
        "client_id": done["client_id"], "assigned_areas": ["area_2"],
    })
    assert r.status_code == 201
    issued = r.json()
    assert issued["token"]

    listing = client.get(f"{API}/client-tokens", headers=admin_headers,
                         params={"client_id": done["client_id"]}).json()
    assert listing["count"] == 2
    assert all("token_hash" not in t for t in listing["tokens"])

    r = client.patch(f"{API}/client-tokens/{issued['token_id']}", headers=admin_headers,
                     json={"assigned_areas": ["area_3"]})
    assert r.json()["assigned_areas"] == ["area_3"]

    stats = client.get(f"{API}/client-tokens/stats", headers=admin_headers).json()
    assert stats["total_tokens"] >= 2
    assert stats["active_tokens"] >= 2

    cleanup = client.post(f"{API}/client-tokens/cleanup", headers=admin_headers).json()
    assert cleanup["cleaned_count"] == 0


def test_token_for_unknown_client_is_404(client, admin_headers):
    r = client.post(f"{API}/client-tokens", headers=admin_headers, json={"client_id": "cli_missing"})
    assert r.status_code == 404
    assert r.json() == {"error": "not_found", "message": "Client not found"}


# --- Scenario D ---

def test_revoke_pushes_token_revoked_and_closes(client, admin_headers):
    done = pair_device(client, admin_headers, areas=["area_1"])
    credential = done["client_token"]

    with client.websocket_connect(f"/ws?token={credential}") as ws:
        assert ws.receive_json()["type"] == "connected"

        r = client.post(f"{API}/client-tokens/{done['token_id']}/revoke", headers=admin_headers,
                        json={"reason": "Lost device"})
        assert r.status_code == 200
        assert r.json()["disconnected"] is True
        assert r.json()["reason"] == "Lost device"

        message = ws.receive_json()
        assert message["type"] == "token_revoked"
        assert message["data"]["reason"] == "Lost device"

        with pytest.raises(WebSocketDisconnect) as exc:
            ws.receive_json()
        assert exc.value.code == 4003

    assert client.get(f"{API}/clients/me", headers=bearer(credential)).status_code == 401
    r = client.post(f"{API}/client-tokens/{done['token_id']}/revoke", headers=admin_headers)
    assert r.status_code == 409

    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect(f"/ws?token={credential}") as ws:
            ws.receive_json()
    assert exc.value.code == 4001


def test_ws_rejects_bad_token(client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/ws?token=garbage") as ws:
            ws.receive_json()
    assert exc.value.code == 4001


def test_ws_ping(client, admin_headers):
    done = pair_device(client, admin_headers)
    with client.websocket_connect(f"/ws?token={done['client_token']}") as ws:
        ws.receive_json()
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}
        ws.send_text("not json")
        assert ws.receive_json()["type"] == "error"


def test_ws_binary_frame_closes_with_1003(client, admin_headers):
    done = pair_device(client, admin_headers)
    with client.websocket_connect(f"/ws?token={done['client_token']}") as ws:
        ws.receive_json()
        ws.send_bytes(b"\x00\x01")
        with pytest.raises(WebSocketDisconnect) as exc:
            ws.receive_json()
    assert exc.value.code == 1003

    # The socket is gone from the registry once the handler exits
    health = client.get(f"{API}/health").json()
    assert health["connected_clients"] == 0


def test_admin_ws_gets_pairing_verified(client, admin_headers):
    token = admin_headers["Authorization"].split(" ", 1)[1]
    with client.websocket_connect(f"/ws?token={token}") as admin_ws:
        session = client.post(f"{API}/pairing", headers=admin_headers).json()
        client.post(f"{API}/pairing/{session['id']}/verify", json={
            "pin": session["pin"], "device_name": "Garage Phone", "device_type": "mobile",
        })
        message = admin_ws.receive_json()
        assert message["type"] == "pairing_verified"
        assert message["data"]["session_id"] == session["id"]


# --- Clients and areas ---

def test_area_changes_reach_assigned_clients(client, admin_headers):
    area = client.post(f"{API}/areas", headers=admin_headers,
                       json={"name": "Kitchen", "entity_ids": ["light.kitchen"]}).json()
    done = pair_device(client, admin_headers, areas=[area["id"]])

    with client.websocket_connect(f"/ws?token={done['client_token']}") as ws:
        ws.receive_json()

        client.patch(f"{API}/areas/{area['id']}/toggle", headers=admin_headers, json={"is_enabled": False})
        message = ws.receive_json()
        assert message["type"] == "area_disabled"
        assert message["data"]["area_id"] == area["id"]

        client.patch(f"{API}/areas/{area['id']}", headers=admin_headers, json={"name": "Big Kitchen"})
        message = ws.receive_json()
        assert message["type"] == "area_updated"
        assert message["data"]["area_name"] == "Big Kitchen"

        r = client.patch(f"{API}/clients/{done['client_id']}", headers=admin_headers,
                         json={"assigned_areas": [area["id"], "area_extra"]})
        assert r.json()["assigned_areas"] == [area["id"], "area_extra"]
        message = ws.receive_json()
        assert message["type"] == "area_added"
        assert message["data"]["area_id"] == "area_extra"

        assert client.delete(f"{API}/areas/{area['id']}", headers=admin_headers).status_code == 204
        message = ws.receive_json()
        assert message["type"] == "area_removed"
        assert message["data"]["area_id"] == area["id"]

    me = client.get(f"{API}/clients/me", headers=bearer(done["client_token"])).json()
    assert me["assigned_areas"] == ["area_extra"]


def test_client_sees_only_assigned_areas(client, admin_headers):
    mine = client.post(f"{API}/areas", headers=admin_headers, json={"name": "Office"}).json()
    other = client.post(f"{API}/areas", headers=admin_headers, json={"name": "Attic"}).json()
    done = pair_device(client, admin_headers, areas=[mine["id"]])
    headers = bearer(done["client_token"])

    ids = [a["id"] for a in client.get(f"{API}/areas", headers=headers).json()]
    assert ids == [mine["id"]]
    assert client.get(f"{API}/areas/{other['id']}", headers=headers).status_code == 404
    assert client.post(f"{API}/areas", headers=headers, json={"name": "x"}).status_code == 403


def test_delete_client_revokes_everything(client, admin_headers):
    done = pair_device(client, admin_headers)
    client.post(f"{API}/client-tokens", headers=admin_headers, json={"client_id": done["client_id"]})

    r = client.delete(f"{API}/clients/{done['client_id']}", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["revoked_tokens"] == 2

    assert client.get(f"{API}/clients/me", headers=bearer(done["client_token"])).status_code == 401
    record = client.get(f"{API}/clients/{done['client_id']}", headers=admin_headers).json()
    assert record["is_active"] is False
    assert client.post(f"{API}/clients/{done['client_id']}/revoke", headers=admin_headers).status_code == 404


def test_credential_is_stored_hashed(client, admin_headers):
    from homepair.database import engine
    from homepair.services.client_store import ClientStore

    done = pair_device(client, admin_headers)
    token = ClientStore(engine).get_token(done["token_id"])
    assert token.token_hash == hash_token(done["client_token"])
    assert token.token_hash != done["client_token"]
