"""Tests for comment creation, threading, visibility and moderation flags."""

from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from factories import create_account, create_reader, provisional_headers, reader_headers
from models import Comment, CommentState, Reader
from services.comments import ANONYMOUS, Viewer, build_visibility_filter
from services.options import save_option
from services.geolocation import RegionLookup, format_region, set_location_lookup
from services.turnstile import TurnstileVerifier, set_turnstile_verifier

REF_ID = uuid4().hex


def _anonymous_payload(text: str, **overrides) -> dict:
    payload = {
        "ref_id": REF_ID,
        "ref_type": "posts",
        "text": text,
        "author": "Guest",
        "mail": "guest@example.com",
    }
    payload.update(overrides)
    return payload


async def _add_comment(
    session: AsyncSession,
    *,
    reader: Reader,
    text: str,
    state: CommentState = CommentState.UNREAD,
    is_whispers: bool = False,
    key: str = "#1",
) -> Comment:
    comment = Comment(
        ref_id=REF_ID,
        ref_type="posts",
        reader_id=reader.id,
        author=reader.name,
        mail=reader.email,
        text=text,
        state=int(state),
        key=key,
        is_whispers=is_whispers,
    )
    session.add(comment)
    await session.commit()
    return comment


async def _visible_texts(session: AsyncSession, viewer: Viewer) -> set[str]:
    result = await session.execute(
        select(Comment).where(
            build_visibility_filter(ref_id=REF_ID, ref_type="posts", viewer=viewer)
        )
    )
    return {comment.text for comment in result.scalars().all()}


@pytest_asyncio.fixture()
async def visibility_scene(db_session: AsyncSession) -> dict[str, Reader]:
    owner = await create_reader(db_session, name="Owner", email="owner@example.com", is_owner=True)
    alice = await create_reader(db_session, name="Alice", email="alice@example.com")
    bob = await create_reader(db_session, name="Bob", email="bob@example.com")
    carol = await create_reader(db_session, name="Carol", email="carol@example.com")
    await _add_comment(db_session, reader=alice, text="pending-a", state=CommentState.PENDING)
    await _add_comment(db_session, reader=bob, text="unread-b", key="#2")
    await _add_comment(db_session, reader=carol, text="spam-c", state=CommentState.SPAM, key="#3")
    return {"owner": owner, "alice": alice, "bob": bob, "carol": carol}


@pytest.mark.asyncio
async def test_anonymous_sees_only_public_comments(db_session, visibility_scene):
    assert await _visible_texts(db_session, ANONYMOUS) == {"unread-b"}


@pytest.mark.asyncio
async def test_author_sees_own_pending_comment(db_session, visibility_scene):
    viewer = Viewer(reader_id=visibility_scene["alice"].id)

    assert await _visible_texts(db_session, viewer) == {"pending-a", "unread-b"}


@pytest.mark.asyncio
async def test_author_never_sees_own_spam(db_session, visibility_scene):
    viewer = Viewer(reader_id=visibility_scene["carol"].id)

    assert await _visible_texts(db_session, viewer) == {"unread-b"}


@pytest.mark.asyncio
async def test_owner_sees_every_comment(db_session, visibility_scene):
    viewer = Viewer(reader_id=visibility_scene["owner"].id, is_owner=True)

    assert await _visible_texts(db_session, viewer) == {"pending-a", "unread-b", "spam-c"}


@pytest.mark.asyncio
async def test_whispers_are_visible_to_author_and_owner_only(db_session: AsyncSession):
    owner = await create_reader(db_session, name="Owner", email="owner@example.com", is_owner=True)
    alice = await create_reader(db_session, name="Alice", email="alice@example.com")
    bob = await create_reader(db_session, name="Bob", email="bob@example.com")
    await _add_comment(db_session, reader=alice, text="whisper", is_whispers=True)

    assert await _visible_texts(db_session, ANONYMOUS) == set()
    assert await _visible_texts(db_session, Viewer(reader_id=bob.id)) == set()
    assert await _visible_texts(db_session, Viewer(reader_id=alice.id)) == {"whisper"}
    assert await _visible_texts(db_session, Viewer(reader_id=owner.id, is_owner=True)) == {
        "whisper"
    }


@pytest.mark.asyncio
async def test_list_endpoint_applies_viewer(async_client, db_session, visibility_scene):
    anonymous = await async_client.get(
        "/api/v1/comments", params={"ref_id": REF_ID, "ref_type": "posts"}
    )
    as_owner = await async_client.get(
        "/api/v1/comments",
        params={"ref_id": REF_ID, "ref_type": "posts"},
        headers=reader_headers(visibility_scene["owner"]),
    )

    assert anonymous.status_code == 200
    assert anonymous.json()["count"] == 1
    assert [c["text"] for c in anonymous.json()["data"]] == ["unread-b"]
    assert "mail" not in anonymous.json()["data"][0]
    assert as_owner.json()["count"] == 3


@pytest.mark.asyncio
async def test_list_endpoint_treats_invalid_token_as_anonymous(
    async_client, db_session, visibility_scene
):
    response = await async_client.get(
        "/api/v1/comments",
        params={"ref_id": REF_ID, "ref_type": "posts"},
        headers={"Authorization": "Bearer garbage"},
    )

    assert response.status_code == 200
    assert response.json()["count"] == 1


@pytest.mark.asyncio
async def test_list_rejects_malformed_ref(async_client):
    response = await async_client.get(
        "/api/v1/comments", params={"ref_id": "nope", "ref_type": "posts"}
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_root_and_reply_keys(async_client):
    keys = []
    for index in range(3):
        response = await async_client.post(
            "/api/v1/comments", json=_anonymous_payload(f"root {index}")
        )
        assert response.status_code == 201
        keys.append(response.json()["data"]["key"])
    assert keys == ["#1", "#2", "#3"]

    other_ref = await async_client.post(
        "/api/v1/comments", json=_anonymous_payload("elsewhere", ref_id=uuid4().hex)
    )
    assert other_ref.json()["data"]["key"] == "#1"

    listing = await async_client.get(
        "/api/v1/comments", params={"ref_id": REF_ID, "ref_type": "posts"}
    )
    second = next(c for c in listing.json()["data"] if c["key"] == "#2")

    reply = await async_client.post(
        "/api/v1/comments", json=_anonymous_payload("reply", parent_id=second["id"])
    )
    assert reply.json()["data"]["key"] == "#2#1"
    assert reply.json()["data"]["parent_id"] == second["id"]
    assert reply.json()["data"]["comments_index"] == 4

    tree = await async_client.get(
        "/api/v1/comments", params={"ref_id": REF_ID, "ref_type": "posts"}
    )
    roots = tree.json()["data"]
    assert [c["key"] for c in roots] == ["#1", "#2", "#3"]
    assert [c["text"] for c in roots[1]["children"]] == ["reply"]
    assert tree.json()["count"] == 4


@pytest.mark.asyncio
async def test_reply_to_unknown_parent_becomes_root(async_client):
    response = await async_client.post(
        "/api/v1/comments", json=_anonymous_payload("orphan", parent_id=uuid4().hex)
    )

    assert response.status_code == 201
    assert response.json()["data"]["key"] == "#1"
    assert response.json()["data"]["parent_id"] is None


@pytest.mark.asyncio
async def test_parent_records_reply_ids(async_client, db_session: AsyncSession):
    parent = await async_client.post("/api/v1/comments", json=_anonymous_payload("parent"))
    parent_id = parent.json()["data"]["id"]
    reply = await async_client.post(
        "/api/v1/comments", json=_anonymous_payload("child", parent_id=parent_id)
    )

    stored = await db_session.get(Comment, parent_id)
    assert stored is not None
    assert stored.children == [reply.json()["data"]["id"]]


@pytest.mark.asyncio
async def test_anonymous_comment_creates_unverified_reader(async_client, db_session):
    response = await async_client.post("/api/v1/comments", json=_anonymous_payload("hello"))

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["state"] == int(CommentState.UNREAD)
    assert data["source"] is None
    assert data["avatar"].startswith("https://cravatar.cn/avatar/")

    readers = (await db_session.execute(select(Reader))).scalars().all()
    assert [(r.name, r.email, r.email_verified) for r in readers] == [
        ("Guest", "guest@example.com", False)
    ]

    again = await async_client.post("/api/v1/comments", json=_anonymous_payload("again"))
    assert again.status_code == 201
    readers = (await db_session.execute(select(Reader))).scalars().all()
    assert len(readers) == 1


@pytest.mark.asyncio
async def test_anonymous_comment_requires_name_and_email(async_client):
    response = await async_client.post(
        "/api/v1/comments", json=_anonymous_payload("hello", mail=None)
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_provisional_session_comments_as_anonymous(async_client, db_session):
    account = await create_account(db_session)

    response = await async_client.post(
        "/api/v1/comments",
        json=_anonymous_payload("hi", author=None),
        headers=provisional_headers(account),
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_signed_in_comment_uses_reader_profile(async_client, db_session):
    reader = await create_reader(db_session, name="Ada", email="ada@example.com")

    response = await async_client.post(
        "/api/v1/comments",
        json={"ref_id": REF_ID, "ref_type": "notes", "text": "signed"},
        headers=reader_headers(reader),
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["author"] == "Ada"
    assert data["source"] == "oauth"
    stored = await db_session.get(Comment, data["id"])
    assert stored is not None
    assert stored.reader_id == reader.id
    assert stored.mail == "ada@example.com"


@pytest.mark.asyncio
async def test_unknown_ref_type_is_rejected(async_client):
    response = await async_client.post(
        "/api/v1/comments", json=_anonymous_payload("x", ref_type="albums")
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_turnstile_token_required_when_enabled(async_client):
    set_turnstile_verifier(TurnstileVerifier("turnstile-secret"))

    response = await async_client.post("/api/v1/comments", json=_anonymous_payload("hello"))

    assert response.status_code == 400
    assert "verification" in response.json()["detail"]


@pytest.mark.asyncio
async def test_author_can_edit_and_delete_own_comment(async_client, db_session):
    author = await create_reader(db_session, name="Ada", email="ada@example.com")
    other = await create_reader(db_session, name="Bob", email="bob@example.com")
    created = await async_client.post(
        "/api/v1/comments",
        json={"ref_id": REF_ID, "ref_type": "posts", "text": "first"},
        headers=reader_headers(author),
    )
    comment_id = created.json()["data"]["id"]

    forbidden = await async_client.patch(
        f"/api/v1/comments/{comment_id}", json={"text": "hijack"}, headers=reader_headers(other)
    )
    assert forbidden.status_code == 403

    edited = await async_client.patch(
        f"/api/v1/comments/{comment_id}", json={"text": "edited"}, headers=reader_headers(author)
    )
    assert edited.status_code == 200
    assert edited.json()["text"] == "edited"

    deleted = await async_client.delete(
        f"/api/v1/comments/{comment_id}", headers=reader_headers(author)
    )
    assert deleted.status_code == 204
    missing = await async_client.delete(
        f"/api/v1/comments/{comment_id}", headers=reader_headers(author)
    )
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_deleting_reply_detaches_it_from_parent(async_client, db_session, session_maker):
    owner = await create_reader(db_session, name="Owner", email="owner@example.com", is_owner=True)
    parent = await async_client.post("/api/v1/comments", json=_anonymous_payload("parent"))
    parent_id = parent.json()["data"]["id"]
    reply = await async_client.post(
        "/api/v1/comments", json=_anonymous_payload("child", parent_id=parent_id)
    )

    response = await async_client.delete(
        f"/api/v1/comments/{reply.json()['data']['id']}", headers=reader_headers(owner)
    )

    assert response.status_code == 204
    async with session_maker() as session:
        stored = await session.get(Comment, parent_id)
        assert stored is not None
        assert stored.children == []


@pytest.mark.asyncio
async def test_admin_actions_require_owner(async_client, db_session):
    reader = await create_reader(db_session, name="Ada", email="ada@example.com")
    created = await async_client.post("/api/v1/comments", json=_anonymous_payload("hello"))
    comment_id = created.json()["data"]["id"]

    response = await async_client.post(
        f"/api/v1/comments/{comment_id}/hide", headers=reader_headers(reader)
    )

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_owner_can_hide_and_pin(async_client, db_session):
    owner = await create_reader(db_session, name="Owner", email="owner@example.com", is_owner=True)
    created = await async_client.post("/api/v1/comments", json=_anonymous_payload("hello"))
    comment_id = created.json()["data"]["id"]

    pinned = await async_client.post(
        f"/api/v1/comments/{comment_id}/pin", headers=reader_headers(owner)
    )
    hidden = await async_client.post(
        f"/api/v1/comments/{comment_id}/hide", headers=reader_headers(owner)
    )

    assert pinned.json()["pin"] is True
    assert hidden.json()["is_whispers"] is True
    listing = await async_client.get(
        "/api/v1/comments", params={"ref_id": REF_ID, "ref_type": "posts"}
    )
    assert listing.json()["count"] == 0

    await async_client.post(f"/api/v1/comments/{comment_id}/unhide", headers=reader_headers(owner))
    listing = await async_client.get(
        "/api/v1/comments", params={"ref_id": REF_ID, "ref_type": "posts"}
    )
    assert listing.json()["count"] == 1


@pytest.mark.asyncio
async def test_owner_comments_are_marked_admin(async_client, db_session):
    owner = await create_reader(db_session, name="Owner", email="owner@example.com", is_owner=True)
    await async_client.post(
        "/api/v1/comments",
        json={"ref_id": REF_ID, "ref_type": "posts", "text": "from the owner"},
        headers=reader_headers(owner),
    )

    listing = await async_client.get(
        "/api/v1/comments", params={"ref_id": REF_ID, "ref_type": "posts"}
    )

    assert listing.json()["data"][0]["is_admin"] is True


@pytest.mark.asyncio
async def test_comments_can_be_disabled_site_wide(async_client, db_session):
    await save_option(db_session, "commentOptions", {"disableComment": True})

    response = await async_client.post("/api/v1/comments", json=_anonymous_payload("hello"))

    assert response.status_code == 403


def test_region_records_drop_unknown_parts() -> None:
    assert format_region("中国|0|北京|北京市|电信") == "中国 北京 北京市 电信"
    assert format_region("0|0|0|0|0") is None
    assert format_region("") is None


def test_region_lookup_picks_searcher_by_address_family() -> None:
    def broken(ip: str) -> str:
        raise OSError("database unavailable")

    lookup = RegionLookup(lambda ip: "美国|0|0|0|0", broken)

    assert lookup.lookup("1.1.1.1") == "美国"
    assert lookup.lookup("2001:db8::1") is None


@pytest.mark.asyncio
async def test_comment_records_client_location(async_client):
    seen: list[str] = []

    def search(ip: str) -> str:
        seen.append(ip)
        return "中国|0|北京|北京市|电信"

    set_location_lookup(RegionLookup(search, search))

    response = await async_client.post("/api/v1/comments", json=_anonymous_payload("hello"))

    assert response.status_code == 201
    assert response.json()["data"]["location"] == "中国 北京 北京市 电信"
    assert seen == ["127.0.0.1"]
