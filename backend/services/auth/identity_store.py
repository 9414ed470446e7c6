"""Reader and provider-account persistence helpers."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, cast

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from models import ProviderAccount, Reader
from models.common import utcnow


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def _asc(column: Any) -> Any:
    return cast(Any, column).asc()


async def get_reader(session: AsyncSession, reader_id: str) -> Reader | None:
    return await session.get(Reader, reader_id)


async def find_reader_by_email(session: AsyncSession, email: str) -> Reader | None:
    result = await session.execute(
        select(Reader)
        .where(_eq(Reader.email, email))
        .order_by(_asc(Reader.created_at), _asc(Reader.id))
        .limit(1)
    )
    return result.scalar_one_or_none()


async def find_reader_by_name_and_email(
    session: AsyncSession,
    *,
    name: str,
    email: str,
) -> Reader | None:
    """Return the oldest Reader with exactly this name and email.

    Nothing stops two rows sharing the pair, so the oldest one wins.
    """
    result = await session.execute(
        select(Reader)
        .where(_eq(Reader.name, name), _eq(Reader.email, email))
        .order_by(_asc(Reader.created_at), _asc(Reader.id))
        .limit(1)
    )
    return result.scalar_one_or_none()


async def find_readers_by_emails(
    session: AsyncSession,
    emails: Sequence[str],
    *,
    exclude_id: str | None = None,
) -> Sequence[Reader]:
    if not emails:
        return []
    stmt = select(Reader).where(cast(Any, Reader.email).in_(list(emails)))
    if exclude_id is not None:
        stmt = stmt.where(cast(ColumnElement[bool], Reader.id != exclude_id))
    result = await session.execute(stmt.order_by(_asc(Reader.created_at), _asc(Reader.id)))
    return result.scalars().all()


async def readers_exist(session: AsyncSession) -> bool:
    result = await session.execute(select(Reader.id).limit(1))
    return result.first() is not None


async def get_owner(session: AsyncSession) -> Reader | None:
    result = await session.execute(select(Reader).where(_eq(Reader.is_owner, True)).limit(1))
    return result.scalar_one_or_none()


async def find_or_create_anonymous_reader(
    session: AsyncSession,
    *,
    name: str,
    email: str,
    handle: str,
    image: str | None,
) -> Reader:
    """Reuse the Reader an anonymous author created earlier, or add a new one.

    The new row is flushed but not committed.
    """
    existing = await find_reader_by_name_and_email(session, name=name, email=email)
    if existing is not None:
        return existing

    reader = Reader(
        email=email,
        name=name,
        handle=handle,
        image=image,
        is_owner=False,
        email_verified=False,
    )
    session.add(reader)
    await session.flush()
    return reader


async def get_account(session: AsyncSession, account_id: str) -> ProviderAccount | None:
    return await session.get(ProviderAccount, account_id)


async def find_account(
    session: AsyncSession,
    *,
    provider: str,
    provider_account_id: str,
) -> ProviderAccount | None:
    result = await session.execute(
        select(ProviderAccount).where(
            _eq(ProviderAccount.provider, provider),
            _eq(ProviderAccount.provider_account_id, provider_account_id),
        )
    )
    return result.scalar_one_or_none()


async def list_accounts_for_owner(
    session: AsyncSession, owner_id: str
) -> Sequence[ProviderAccount]:
    result = await session.execute(
        select(ProviderAccount)
        .where(_eq(ProviderAccount.owner_id, owner_id))
        .order_by(_asc(ProviderAccount.created_at), _asc(ProviderAccount.id))
    )
    return result.scalars().all()


async def reassign_accounts(session: AsyncSession, *, from_owner: str, to_owner: str) -> int:
    """Point every account owned by ``from_owner`` at ``to_owner``.

    Runs inside the caller's transaction; the caller commits.
    """
    result = await session.execute(
        update(ProviderAccount)
        .where(_eq(ProviderAccount.owner_id, from_owner))
        .values(owner_id=to_owner, updated_at=utcnow())
        .execution_options(synchronize_session="fetch")
    )
    return int(cast(Any, result).rowcount or 0)


__all__ = [
    "get_reader",
    "find_reader_by_email",
    "find_reader_by_name_and_email",
    "find_readers_by_emails",
    "readers_exist",
    "get_owner",
    "find_or_create_anonymous_reader",
    "get_account",
    "find_account",
    "list_accounts_for_owner",
    "reassign_accounts",
]
