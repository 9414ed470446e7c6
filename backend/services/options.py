"""Read access to store-resident configuration documents."""

from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from models import Option


async def load_option(session: AsyncSession, name: str) -> dict[str, Any]:
    """Return the option document, or an empty mapping when it is absent."""
    option = await session.get(Option, name)
    if option is None or not isinstance(option.value, dict):
        return {}
    return dict(option.value)


async def save_option(session: AsyncSession, name: str, value: dict[str, Any]) -> Option:
    option = await session.get(Option, name)
    if option is None:
        option = Option(name=name, value=value)
        session.add(option)
    else:
        option.value = value
    await session.commit()
    return option


__all__ = ["load_option", "save_option"]
