"""Row builders and auth headers shared by the tests."""

from sqlalchemy.ext.asyncio import AsyncSession

from core import ProvisionalSubject, ResolvedSubject, issue_session_token
from models import ProviderAccount, Reader


async def create_reader(
    session: AsyncSession,
    *,
    name: str = "Ada",
    email: str = "ada@example.com",
    is_owner: bool = False,
) -> Reader:
    reader = Reader(
        name=name,
        email=email,
        handle=name.lower(),
        image=None,
        is_owner=is_owner,
        owner_slot=1 if is_owner else None,
        email_verified=True,
    )
    session.add(reader)
    await session.commit()
    return reader


async def create_account(
    session: AsyncSession,
    *,
    provider: str = "github",
    provider_account_id: str = "1001",
    owner_id: str | None = None,
    email: str | None = None,
) -> ProviderAccount:
    account = ProviderAccount(
        provider=provider,
        provider_account_id=provider_account_id,
        owner_id="",
        access_token="token",
        oauth_name="Octo",
        oauth_email=email or f"{provider_account_id}@{provider}.oauth",
        oauth_handle="octo",
    )
    account.owner_id = owner_id or account.id
    session.add(account)
    await session.commit()
    return account


def reader_headers(reader: Reader) -> dict[str, str]:
    token = issue_session_token(ResolvedSubject(reader_id=reader.id), reader.is_owner)
    return {"Authorization": f"Bearer {token}"}


def provisional_headers(account: ProviderAccount, *, is_owner: bool = False) -> dict[str, str]:
    token = issue_session_token(ProvisionalSubject(account_id=account.id), is_owner)
    return {"Authorization": f"Bearer {token}"}
