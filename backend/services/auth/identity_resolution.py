"""OAuth login resolution and the provisional-identity bind workflow."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core import (
    BadInput,
    DataConsistencyError,
    NotFound,
    PermissionDenied,
    ProvisionalSubject,
    ResolvedSubject,
    Subject,
    issue_session_token,
)
from db.errors import is_unique_violation
from models import OWNER_SLOT, ProviderAccount, Reader
from models.common import new_id

from . import identity_store
from .avatars import gravatar_url
from .oauth import OAuthPayload

logger = logging.getLogger(__name__)

PLACEHOLDER_EMAIL_SUFFIX = ".oauth"
_HANDLE_DISALLOWED = re.compile(r"[^a-z0-9_-]+")


def placeholder_email(provider: str, provider_account_id: str) -> str:
    """Display-only address for providers that withheld the real one."""
    return f"{provider_account_id}@{provider}{PLACEHOLDER_EMAIL_SUFFIX}"


def is_placeholder_email(email: str | None) -> bool:
    if not email:
        return False
    _, _, domain = email.strip().lower().rpartition("@")
    return domain.endswith(PLACEHOLDER_EMAIL_SUFFIX)


def matchable_email(email: str | None) -> str | None:
    """Return the address when it may be used to match an existing Reader."""
    if email is None:
        return None
    stripped = email.strip()
    if not stripped or is_placeholder_email(stripped):
        return None
    return stripped


def generate_handle(name: str) -> str:
    return _HANDLE_DISALLOWED.sub("", name.lower()).strip("-_")


@dataclass(frozen=True)
class LoginResolution:
    subject: Subject
    is_owner: bool
    is_new_identity: bool


@dataclass(frozen=True)
class SessionGrant:
    reader: Reader
    token: str


@dataclass(frozen=True)
class _ReaderSeed:
    """Plain snapshot of an account profile, safe to reuse after a rollback."""

    email: str
    name: str
    handle: str
    image: str
    email_verified: bool


def _new_account(payload: OAuthPayload, *, owner_id: str | None) -> ProviderAccount:
    account_id = new_id()
    return ProviderAccount(
        id=account_id,
        # A provisional account owns itself until bind or skip-bind reassigns it.
        owner_id=owner_id or account_id,
        provider=payload.provider,
        provider_account_id=payload.provider_account_id,
        access_token=payload.access_token,
        scope=payload.scope,
        oauth_name=payload.name,
        oauth_email=payload.email
        or placeholder_email(payload.provider, payload.provider_account_id),
        oauth_avatar=payload.avatar,
        oauth_handle=payload.handle,
    )


async def _insert_account(session: AsyncSession, account: ProviderAccount) -> bool:
    """Commit a new account. False means another login created it first."""
    session.add(account)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        if is_unique_violation(exc):
            return False
        raise
    return True


async def _resolve_returning(
    session: AsyncSession, account: ProviderAccount
) -> LoginResolution:
    if account.owner_id == account.id:
        return LoginResolution(
            subject=ProvisionalSubject(account_id=account.id),
            is_owner=not await identity_store.readers_exist(session),
            is_new_identity=False,
        )

    reader = await identity_store.get_reader(session, account.owner_id)
    if reader is None:
        logger.error(
            "Provider account references a missing reader",
            extra={
                "account_id": account.id,
                "provider": account.provider,
                "owner_id": account.owner_id,
            },
        )
        raise DataConsistencyError("Linked reader no longer exists")
    return LoginResolution(
        subject=ResolvedSubject(reader_id=reader.id),
        is_owner=reader.is_owner,
        is_new_identity=False,
    )


async def process_oauth_login(session: AsyncSession, payload: OAuthPayload) -> LoginResolution:
    """Resolve a normalised OAuth profile to a session subject.

    Order: a known (provider, account id) pair, then an existing Reader with
    the same real email (linked without asking the user), then a brand-new
    provisional identity.
    """
    # A concurrent login for the same provider id can win the insert race;
    # the second pass then finds its account.
    for _ in range(2):
        account = await identity_store.find_account(
            session,
            provider=payload.provider,
            provider_account_id=payload.provider_account_id,
        )
        if account is not None:
            return await _resolve_returning(session, account)

        email = matchable_email(payload.email)
        if email is not None:
            reader = await identity_store.find_reader_by_email(session, email)
            if reader is not None:
                reader_id, is_owner = reader.id, reader.is_owner
                if await _insert_account(session, _new_account(payload, owner_id=reader_id)):
                    logger.info(
                        "Linked provider account to existing reader by email",
                        extra={"provider": payload.provider, "reader_id": reader_id},
                    )
                    return LoginResolution(
                        subject=ResolvedSubject(reader_id=reader_id),
                        is_owner=is_owner,
                        is_new_identity=False,
                    )
                continue

        is_first_user = not await identity_store.readers_exist(session)
        account = _new_account(payload, owner_id=None)
        account_id = account.id
        if await _insert_account(session, account):
            return LoginResolution(
                subject=ProvisionalSubject(account_id=account_id),
                is_owner=is_first_user,
                is_new_identity=True,
            )

    raise DataConsistencyError("Provider account could not be resolved")


async def _owning_reader(session: AsyncSession, subject: Subject) -> Reader | None:
    """Reader the subject already maps to, if the login was resolved earlier."""
    if isinstance(subject, ResolvedSubject):
        return await identity_store.get_reader(session, subject.reader_id)

    account = await identity_store.get_account(session, subject.account_id)
    if account is None or account.owner_id == account.id:
        return None
    return await identity_store.get_reader(session, account.owner_id)


def _grant(reader: Reader) -> SessionGrant:
    token = issue_session_token(ResolvedSubject(reader_id=reader.id), reader.is_owner)
    return SessionGrant(reader=reader, token=token)


async def bind_existing(
    session: AsyncSession,
    subject: Subject,
    *,
    name: str,
    email: str,
) -> SessionGrant:
    """Move the caller's provider accounts onto the Reader matching (name, email).

    The match is exact and case-sensitive. Returns a fresh token for the
    target Reader; the caller's previous token should be discarded.
    """
    target = await identity_store.find_reader_by_name_and_email(session, name=name, email=email)
    if target is None:
        raise NotFound("No reader matches that name and email")
    if target.is_owner:
        raise PermissionDenied("The owner identity cannot be claimed by binding")

    resolved = await _owning_reader(session, subject)
    if resolved is not None and resolved.id == target.id:
        return _grant(target)

    caller_reader = resolved if isinstance(subject, ResolvedSubject) else None
    if caller_reader is not None and caller_reader.is_owner:
        raise BadInput("The owner identity cannot be merged into another reader")

    moved = await identity_store.reassign_accounts(
        session, from_owner=subject.id, to_owner=target.id
    )
    if moved == 0:
        await session.rollback()
        raise NotFound("No provider account is linked to this session")
    if caller_reader is not None:
        await session.delete(caller_reader)
    await session.commit()

    logger.info(
        "Bound session to existing reader",
        extra={"subject_kind": subject.kind, "reader_id": target.id, "accounts_moved": moved},
    )
    return _grant(target)


def _seed_from_account(account: ProviderAccount) -> _ReaderSeed:
    name = (account.oauth_name or account.oauth_handle or "").strip() or f"reader-{account.id[:8]}"
    email = (account.oauth_email or "").strip() or placeholder_email(
        account.provider, account.provider_account_id
    )
    handle = (
        generate_handle(name)
        or generate_handle(account.oauth_handle or "")
        or f"reader-{account.id[:8]}"
    )
    return _ReaderSeed(
        email=email,
        name=name,
        handle=handle,
        image=account.oauth_avatar or gravatar_url(email),
        email_verified=matchable_email(account.oauth_email) is not None,
    )


async def _create_reader_for_accounts(
    session: AsyncSession,
    seed: _ReaderSeed,
    subject: Subject,
) -> Reader:
    """Create a Reader from ``seed`` and move the subject's accounts onto it.

    If the accounts were moved elsewhere in the meantime (a concurrent bind or
    skip-bind), nothing is created and the Reader they now belong to is
    returned instead.
    """
    claim_owner = not await identity_store.readers_exist(session)
    attempts: Sequence[bool] = (True, False) if claim_owner else (False,)

    for as_owner in attempts:
        reader = Reader(
            email=seed.email,
            name=seed.name,
            handle=seed.handle,
            image=seed.image,
            is_owner=as_owner,
            owner_slot=OWNER_SLOT if as_owner else None,
            email_verified=seed.email_verified,
        )
        session.add(reader)
        try:
            await session.flush()
            moved = await identity_store.reassign_accounts(
                session, from_owner=subject.id, to_owner=reader.id
            )
            if moved == 0:
                await session.rollback()
                return await _reader_claimed_concurrently(session, subject)
            await session.commit()
        except IntegrityError as exc:
            await session.rollback()
            if as_owner and is_unique_violation(exc):
                # Another reader claimed the owner slot first.
                continue
            raise
        logger.info(
            "Created reader from provisional login",
            extra={"reader_id": reader.id, "is_owner": reader.is_owner},
        )
        return reader

    raise DataConsistencyError("Reader could not be created")


async def _reader_claimed_concurrently(session: AsyncSession, subject: Subject) -> Reader:
    reader = await _owning_reader(session, subject)
    if reader is None:
        raise NotFound("No provider account is linked to this session")
    logger.info(
        "Provisional login was resolved concurrently",
        extra={"subject_kind": subject.kind, "reader_id": reader.id},
    )
    return reader


async def skip_bind(session: AsyncSession, subject: Subject) -> SessionGrant:
    """Turn the caller's provisional login into a Reader of its own.

    Calling it again after it succeeded returns the same Reader.
    """
    existing = await _owning_reader(session, subject)
    if existing is not None:
        return _grant(existing)

    accounts = await identity_store.list_accounts_for_owner(session, subject.id)
    if not accounts:
        raise NotFound("No provider account is linked to this session")

    seed = _seed_from_account(accounts[0])
    reader = await _create_reader_for_accounts(session, seed, subject)
    return _grant(reader)


__all__ = [
    "PLACEHOLDER_EMAIL_SUFFIX",
    "LoginResolution",
    "SessionGrant",
    "placeholder_email",
    "is_placeholder_email",
    "matchable_email",
    "generate_handle",
    "process_oauth_login",
    "bind_existing",
    "skip_bind",
]
