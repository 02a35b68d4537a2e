"""
Shared fixtures.

  • client           : TestClient bound to a fresh in-memory database
  • auth(user)       : bearer headers for a user id
  • seeded           : a board owned by alice: todo=[c1,c2,c3], doing=[c4], done=[]
  • asgi_transport   : httpx transport serving the same app in-process
  • make_snapshot    : build a GET /boards/{id} body from {list_id: [card ids]}
"""

from __future__ import annotations

from typing import Dict, List

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from taskboard.db import get_session, init_db
from taskboard.main import app


def _auth(user: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {user}"}


@pytest.fixture
def auth():
    return _auth


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def client(session_factory):
    def _session():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_session] = _session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def seeded(client):
    """Create alice's board and return its ids."""
    headers = _auth("alice")
    board = client.post("/v1/boards", json={"name": "Roadmap"}, headers=headers).json()
    ids: Dict[str, str] = {"board": board["id"]}
    layout = {"todo": ["c1", "c2", "c3"], "doing": ["c4"], "done": []}
    for title, cards in layout.items():
        created = client.post(f"/v1/boards/{board['id']}/lists", json={"title": title}, headers=headers).json()
        ids[title] = created["id"]
        for card_title in cards:
            card = client.post(f"/v1/lists/{created['id']}/cards", json={"title": card_title}, headers=headers).json()
            ids[card_title] = card["id"]
    return ids


@pytest.fixture
def asgi_transport(client):
    return httpx.ASGITransport(app=app)


@pytest.fixture
def make_snapshot():
    def _factory(layout: Dict[str, List[str]], board_id: str = "b1") -> dict:
        return {
            "board": {
                "id": board_id,
                "name": "Board",
                "color": "#0079BF",
                "description": "",
                "lists": [
                    {
                        "id": list_id,
                        "title": list_id.upper(),
                        "position": list_index,
                        "boardId": board_id,
                        "cards": [
                            {
                                "id": card_id,
                                "title": card_id,
                                "position": card_index,
                                "listId": list_id,
                                "description": None,
                                "dueDate": None,
                                "labels": [],
                                "members": [],
                            }
                            for card_index, card_id in enumerate(card_ids)
                        ],
                    }
                    for list_index, (list_id, card_ids) in enumerate(layout.items())
                ],
            }
        }

    return _factory
