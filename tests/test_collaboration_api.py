from taskboard import config


def _card(client, auth, board_id, card_id, user="alice"):
    lists = client.get(f"/v1/boards/{board_id}", headers=auth(user)).json()["board"]["lists"]
    return next(c for bl in lists for c in bl["cards"] if c["id"] == card_id)


def _invite_bob(client, auth, board_id):
    response = client.post(
        f"/v1/boards/{board_id}/invitations", json={"email": "Bob@Example.com"}, headers=auth("alice")
    )
    assert response.status_code == 201
    return response.json()


def test_labels_lifecycle(client, auth, seeded):
    board_id = seeded["board"]
    bad = client.post(f"/v1/boards/{board_id}/labels", json={"name": "bug", "color": "red"}, headers=auth("alice"))
    assert bad.status_code == 400

    label = client.post(
        f"/v1/boards/{board_id}/labels", json={"name": "bug", "color": "#FF0000"}, headers=auth("alice")
    ).json()
    assert client.get(f"/v1/boards/{board_id}/labels", headers=auth("alice")).json()[0]["name"] == "bug"

    card = client.post(f"/v1/cards/{seeded['c1']}/labels/{label['id']}", headers=auth("alice")).json()
    assert [lb["name"] for lb in card["labels"]] == ["bug"]
    again = client.post(f"/v1/cards/{seeded['c1']}/labels/{label['id']}", headers=auth("alice"))
    assert again.status_code == 409

    renamed = client.put(
        f"/v1/boards/{board_id}/labels/{label['id']}", json={"name": "defect"}, headers=auth("alice")
    ).json()
    assert renamed["name"] == "defect"
    assert renamed["color"] == "#FF0000"

    assert client.delete(f"/v1/boards/{board_id}/labels/{label['id']}", headers=auth("alice")).status_code == 204
    assert _card(client, auth, board_id, seeded["c1"])["labels"] == []


def test_label_from_another_board_is_rejected(client, auth, seeded):
    other = client.post("/v1/boards", json={"name": "Other"}, headers=auth("alice")).json()
    label = client.post(
        f"/v1/boards/{other['id']}/labels", json={"name": "x", "color": "#000000"}, headers=auth("alice")
    ).json()
    response = client.post(f"/v1/cards/{seeded['c1']}/labels/{label['id']}", headers=auth("alice"))
    assert response.status_code == 404


def test_remove_card_label(client, auth, seeded):
    label = client.post(
        f"/v1/boards/{seeded['board']}/labels", json={"name": "ux", "color": "#00FF00"}, headers=auth("alice")
    ).json()
    client.post(f"/v1/cards/{seeded['c2']}/labels/{label['id']}", headers=auth("alice"))
    card = client.delete(f"/v1/cards/{seeded['c2']}/labels/{label['id']}", headers=auth("alice")).json()
    assert card["labels"] == []
    missing = client.delete(f"/v1/cards/{seeded['c2']}/labels/{label['id']}", headers=auth("alice"))
    assert missing.status_code == 404


def test_invitation_accept_grants_access(client, auth, seeded):
    board_id = seeded["board"]
    invitation = _invite_bob(client, auth, board_id)
    assert invitation["email"] == "bob@example.com"
    assert invitation["token"]

    peek = client.get(f"/v1/invitations/{invitation['token']}")
    assert peek.status_code == 200
    assert peek.json()["boardName"] == "Roadmap"
    assert peek.json()["token"] is None

    assert client.get(f"/v1/boards/{board_id}", headers=auth("bob")).status_code == 403
    client.put("/v1/me", json={"name": "Bob", "email": "bob@example.com"}, headers=auth("bob"))
    accepted = client.post(f"/v1/invitations/{invitation['token']}/accept", headers=auth("bob"))
    assert accepted.status_code == 200
    assert accepted.json()["id"] == board_id
    assert client.get(f"/v1/boards/{board_id}", headers=auth("bob")).status_code == 200
    assert [b["id"] for b in client.get("/v1/boards", headers=auth("bob")).json()["boards"]] == [board_id]

    reused = client.post(f"/v1/invitations/{invitation['token']}/accept", headers=auth("bob"))
    assert reused.status_code == 400


def test_invitation_requires_matching_email(client, auth, seeded):
    invitation = _invite_bob(client, auth, seeded["board"])
    client.put("/v1/me", json={"name": "Carol", "email": "carol@example.com"}, headers=auth("carol"))
    response = client.post(f"/v1/invitations/{invitation['token']}/accept", headers=auth("carol"))
    assert response.status_code == 403


def test_duplicate_pending_invitation(client, auth, seeded):
    _invite_bob(client, auth, seeded["board"])
    response = client.post(
        f"/v1/boards/{seeded['board']}/invitations", json={"email": "bob@example.com"}, headers=auth("alice")
    )
    assert response.status_code == 409


def test_only_owner_invites_and_lists_invitations(client, auth, seeded):
    url = f"/v1/boards/{seeded['board']}/invitations"
    assert client.post(url, json={"email": "x@example.com"}, headers=auth("bob")).status_code == 403
    _invite_bob(client, auth, seeded["board"])
    listed = client.get(url, headers=auth("alice")).json()["invitations"]
    assert [inv["status"] for inv in listed] == ["pending"]
    assert client.get(url, headers=auth("bob")).status_code == 403


def test_expired_invitation(client, auth, seeded, monkeypatch):
    monkeypatch.setattr(config, "INVITATION_TTL_DAYS", -1)
    invitation = _invite_bob(client, auth, seeded["board"])
    assert client.get(f"/v1/invitations/{invitation['token']}").status_code == 410
    assert client.get("/v1/invitations/not-a-token").status_code == 404


def test_card_members(client, auth, seeded):
    invitation = _invite_bob(client, auth, seeded["board"])
    client.put("/v1/me", json={"name": "Bob", "email": "bob@example.com"}, headers=auth("bob"))
    client.post(f"/v1/invitations/{invitation['token']}/accept", headers=auth("bob"))

    card = client.post(f"/v1/cards/{seeded['c1']}/members/bob", headers=auth("alice")).json()
    assert [m["name"] for m in card["members"]] == ["Bob"]
    assert client.post(f"/v1/cards/{seeded['c1']}/members/bob", headers=auth("alice")).status_code == 409
    assert client.post(f"/v1/cards/{seeded['c1']}/members/mallory", headers=auth("alice")).status_code == 400

    # members can work on the board too
    assert client.post(f"/v1/cards/{seeded['c1']}/members/alice", headers=auth("bob")).status_code == 200
    card = client.delete(f"/v1/cards/{seeded['c1']}/members/bob", headers=auth("alice")).json()
    assert [m["id"] for m in card["members"]] == ["alice"]


def test_profile_email_must_be_unique(client, auth):
    assert client.put("/v1/me", json={"name": "A", "email": "a@example.com"}, headers=auth("alice")).status_code == 200
    response = client.put("/v1/me", json={"name": "B", "email": "a@example.com"}, headers=auth("bob"))
    assert response.status_code == 409


def test_read_profile(client, auth):
    assert client.get("/v1/me").status_code == 401
    assert client.get("/v1/me", headers=auth("alice")).json() == {"id": "alice", "name": None, "email": None}
    client.put("/v1/me", json={"name": "Alice", "email": "Alice@Example.com"}, headers=auth("alice"))
    assert client.get("/v1/me", headers=auth("alice")).json() == {
        "id": "alice",
        "name": "Alice",
        "email": "alice@example.com",
    }
