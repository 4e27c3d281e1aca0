import uuid
from collections.abc import AsyncGenerator

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.common.enums import CallerRole, Capability
from eventhub.common.exceptions import AuthenticationError
from eventhub.common.identity import Caller
from eventhub.common.security import decode_token
from eventhub.db.session import async_session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_caller(
    authorization: str | None = Header(None, description="Bearer <token>"),
) -> Caller:
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthenticationError("Missing or malformed authorization header")

    token = authorization[len("Bearer "):]
    try:
        payload = decode_token(token)
    except ValueError:
        raise AuthenticationError("Invalid or expired token")

    if payload.get("type") != "access":
        raise AuthenticationError("Invalid token type")

    try:
        caller_id = uuid.UUID(payload["sub"])
        role = CallerRole(payload["role"])
    except (KeyError, TypeError, ValueError):
        raise AuthenticationError("Invalid token payload")

    return Caller(id=caller_id, role=role)


def require_capability(capability: Capability):
    async def capability_checker(caller: Caller = Depends(get_caller)) -> Caller:
        caller.require(capability)
        return caller

    return capability_checker
