# ruff: noqa: INP001
"""Comments, mention notifications, tags, flags, and public sharing."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

import pytest
from fastapi import APIRouter, Depends, FastAPI, HTTPException, status
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from blupi.api.boards import router as boards_router
from blupi.api.comments import router as comments_router
from blupi.api.notifications import router as notifications_router
from blupi.api.organizations import router as organizations_router
from blupi.core.auth import AuthContext, get_auth_context
from blupi.core.error_handling import install_error_handling
from blupi.core.rate_limit import limiter
from blupi.db.session import get_session
from blupi.models.users import User
from blupi.realtime.hub import BoardHub


@dataclass
class _World:
    client: AsyncClient
    users: dict[str, UUID]
    hub: BoardHub
    current: dict[str, UUID | None] = field(default_factory=lambda: {"user": None})

    def act_as(self, name: str) -> None:
        self.current["user"] = self.users[name]


@asynccontextmanager
async def _world() -> AsyncIterator[_World]:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.connect() as conn, conn.begin():
        await conn.run_sync(SQLModel.metadata.create_all)
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    users: dict[str, UUID] = {}
    async with session_maker() as session:
        for key in ("alice", "bob", "carol"):
            user = User(clerk_user_id=key, email=f"{key}@example.com", name=key.title())
            session.add(user)
            users[key] = user.id
        await session.commit()

    current: dict[str, UUID | None] = {"user": None}
    app = FastAPI()
    app.state.limiter = limiter
    hub = BoardHub()
    app.state.board_hub = hub
    install_error_handling(app)
    api = APIRouter(prefix="/api")
    for router in (organizations_router, boards_router, comments_router, notifications_router):
        api.include_router(router)
    app.include_router(api)

    async def _override_get_session() -> AsyncSession:
        async with session_maker() as session:
            yield session

    async def _override_auth(session: AsyncSession = Depends(get_session)) -> AuthContext:
        user_id = current["user"]
        user = await session.get(User, user_id) if user_id else None
        if user is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
        return AuthContext(actor_type="user", user=user)

    app.dependency_overrides[get_session] = _override_get_session
    app.dependency_overrides[get_auth_context] = _override_auth
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://testserver",
        ) as client:
            yield _World(client=client, users=users, hub=hub, current=current)
    finally:
        await engine.dispose()


async def _shared_board(world: _World) -> dict[str, Any]:
    """Alice owns an org with Bob as member and one board; Carol stays outside."""
    world.act_as("alice")
    org = await world.client.post("/api/organizations", json={"name": "Acme"})
    assert org.status_code == 200, org.text
    invite = await world.client.post(
        f"/api/organizations/{org.json()['id']}/invites",
        json={"invited_email": "bob@example.com"},
    )
    assert invite.status_code == 200, invite.text
    world.act_as("bob")
    accepted = await world.client.post(
        "/api/organizations/invites/accept",
        json={"token": invite.json()["token"]},
    )
    assert accepted.status_code == 200, accepted.text

    world.act_as("alice")
    board = await world.client.post(
        "/api/boards",
        json={
            "name": "Checkout",
            "phases": [{"id": "p1", "name": "Buy", "columns": [{"id": "c1", "name": "Cart"}]}],
            "blocks": [{"id": "b1", "type": "touchpoint", "content": "Cart page", "phaseId": "p1", "columnId": "c1"}],
        },
    )
    assert board.status_code == 200, board.text
    return board.json()


@pytest.mark.asyncio
async def test_mentions_notify_org_members_only() -> None:
    async with _world() as world:
        board = await _shared_board(world)
        comments_url = f"/api/boards/{board['id']}/comments"

        created = await world.client.post(
            comments_url,
            json={
                "content": "Can we shorten this step?",
                "block_id": "b1",
                "mentions": [
                    str(world.users["bob"]),
                    str(world.users["carol"]),
                    str(world.users["alice"]),
                ],
            },
        )
        assert created.status_code == 200, created.text
        assert created.json()["author_name"] == "Alice"

        missing_block = await world.client.post(
            comments_url,
            json={"content": "Hi", "block_id": "nope"},
        )
        assert missing_block.status_code == 404
        assert missing_block.json()["message"] == "Block not found"

        world.act_as("carol")
        assert (await world.client.get("/api/notifications/unread-count")).json() == {"count": 0}

        world.act_as("bob")
        inbox = await world.client.get("/api/notifications")
        assert inbox.status_code == 200
        assert {n["type"] for n in inbox.json()} == {"comment_mention", "team_invitation"}
        [mention] = [n for n in inbox.json() if n["type"] == "comment_mention"]
        assert (await world.client.get("/api/notifications/unread-count")).json() == {"count": 2}
        assert mention["title"] == "Alice mentioned you"
        assert mention["message"] == 'On "Checkout": Can we shorten this step?'
        assert mention["meta"]["block_id"] == "b1"
        assert mention["from_user_id"] == str(world.users["alice"])

        read = await world.client.post(f"/api/notifications/{mention['id']}/read")
        assert read.json()["read"] is True
        assert read.json()["read_at"] is not None
        assert (await world.client.get("/api/notifications/unread-count")).json() == {"count": 1}

        by_block = await world.client.get(comments_url, params={"block_id": "b1"})
        assert [c["content"] for c in by_block.json()] == ["Can we shorten this step?"]


@pytest.mark.asyncio
async def test_comment_edit_rules() -> None:
    async with _world() as world:
        board = await _shared_board(world)
        comments_url = f"/api/boards/{board['id']}/comments"
        world.act_as("bob")
        parent = (await world.client.post(comments_url, json={"content": "First"})).json()
        reply = await world.client.post(
            comments_url,
            json={"content": "Reply", "parent_id": parent["id"]},
        )
        assert reply.status_code == 200

        world.act_as("alice")
        edit = await world.client.patch(f"{comments_url}/{parent['id']}", json={"content": "Hacked"})
        assert edit.status_code == 403
        assert edit.json()["message"] == "Only the author can edit this comment"

        resolve = await world.client.patch(f"{comments_url}/{parent['id']}", json={"resolved": True})
        assert resolve.status_code == 200
        assert resolve.json()["resolved"] is True
        assert resolve.json()["content"] == "First"

        deleted = await world.client.delete(f"{comments_url}/{parent['id']}")
        assert deleted.status_code == 200
        assert (await world.client.get(comments_url)).json() == []


@pytest.mark.asyncio
async def test_notification_inbox_is_private() -> None:
    async with _world() as world:
        board = await _shared_board(world)
        await world.client.post(
            f"/api/boards/{board['id']}/comments",
            json={"content": "ping @bob", "mentions": [str(world.users["bob"])]},
        )
        world.act_as("bob")
        inbox = (await world.client.get("/api/notifications")).json()
        [mention] = [n for n in inbox if n["type"] == "comment_mention"]

        world.act_as("alice")
        assert (await world.client.post(f"/api/notifications/{mention['id']}/read")).status_code == 404
        assert (await world.client.delete(f"/api/notifications/{mention['id']}")).status_code == 404

        world.act_as("bob")
        assert (await world.client.post("/api/notifications/read-all")).json() == {"count": 2}
        assert (await world.client.get("/api/notifications", params={"unread_only": True})).json() == []
        assert (await world.client.delete(f"/api/notifications/{mention['id']}")).status_code == 200


@pytest.mark.asyncio
async def test_tags_and_flags() -> None:
    async with _world() as world:
        board = await _shared_board(world)
        base = f"/api/boards/{board['id']}"

        tag = await world.client.post(f"{base}/tags", json={"name": "Q3", "color": "#FF0000"})
        assert tag.status_code == 200, tag.text
        duplicate = await world.client.post(f"{base}/tags", json={"name": "Q3"})
        assert duplicate.status_code == 409

        world.act_as("bob")
        flag = await world.client.post(f"{base}/blocks/b1/flag", json={"reason": "Confusing"})
        assert flag.status_code == 200, flag.text
        assert flag.json()["reason"] == "Confusing"
        again = await world.client.post(f"{base}/blocks/b1/flag", json={})
        assert again.json()["id"] == flag.json()["id"]
        assert (await world.client.post(f"{base}/blocks/zzz/flag", json={})).status_code == 404

        current = (await world.client.get(base)).json()
        assert current["blocks"][0]["flagged"] is True
        assert [f["block_id"] for f in (await world.client.get(f"{base}/flags")).json()] == ["b1"]

        assert (await world.client.post(f"{base}/blocks/b1/unflag")).status_code == 200
        assert (await world.client.get(base)).json()["blocks"][0]["flagged"] is False
        assert (await world.client.post(f"{base}/blocks/b1/unflag")).status_code == 404

        world.act_as("alice")
        removed = await world.client.delete(f"{base}/tags/{tag.json()['id']}")
        assert removed.status_code == 200
        assert (await world.client.get(f"{base}/tags")).json() == []


@pytest.mark.asyncio
async def test_flags_go_away_with_their_blocks() -> None:
    async with _world() as world:
        board = await _shared_board(world)
        base = f"/api/boards/{board['id']}"
        assert (await world.client.post(f"{base}/blocks/b1/flag", json={})).status_code == 200

        dropped = await world.client.delete(f"{base}/phases/p1/columns/c1")
        assert dropped.status_code == 200, dropped.text
        assert dropped.json()["blocks"] == []
        assert (await world.client.get(f"{base}/flags")).json() == []

        phases = [{"id": "p1", "name": "Buy", "columns": [{"id": "c2", "name": "Pay"}]}]
        block = {"id": "b2", "type": "friction", "content": "Card declined", "phaseId": "p1", "columnId": "c2"}
        restored = await world.client.patch(base, json={"phases": phases, "blocks": [block]})
        assert restored.status_code == 200, restored.text
        assert (await world.client.post(f"{base}/blocks/b2/flag", json={})).status_code == 200

        cleared = await world.client.patch(base, json={"blocks": []})
        assert cleared.status_code == 200, cleared.text
        assert (await world.client.get(f"{base}/flags")).json() == []


@pytest.mark.asyncio
async def test_public_sharing_toggle() -> None:
    async with _world() as world:
        board = await _shared_board(world)
        public_url = f"/api/boards/{board['id']}/public"

        world.act_as("carol")
        assert (await world.client.get(public_url)).status_code == 404

        world.act_as("alice")
        shared = await world.client.patch(public_url, json={"is_public": True, "public_role": "editor"})
        assert shared.status_code == 200, shared.text
        assert shared.json()["is_public"] is True

        world.current["user"] = None
        view = await world.client.get(public_url)
        assert view.status_code == 200
        assert view.json()["public_role"] == "editor"
        assert view.json()["blocks"][0]["content"] == "Cart page"

        world.act_as("alice")
        hidden = await world.client.patch(public_url, json={"is_public": False})
        assert hidden.json()["public_role"] == "viewer"
        assert (await world.client.get(public_url)).status_code == 404
