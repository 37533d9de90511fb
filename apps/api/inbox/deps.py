from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from inbox.db import SessionLocal
from inbox.models import User
from inbox.security import api_token_hash
from inbox.services import Services


async def get_db() -> AsyncSession:
  async with SessionLocal() as session:
    yield session


def get_services(request: Request) -> Services:
  return request.app.state.services


async def get_current_user(request: Request, db: AsyncSession = Depends(get_db)) -> User:
  auth = request.headers.get("authorization")
  if not auth or not auth.lower().startswith("bearer "):
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
  token = auth.split(" ", 1)[1].strip()
  if not token:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
  res = await db.execute(select(User).where(User.api_token_hash == api_token_hash(token)))
  u = res.scalar_one_or_none()
  if not u:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
  if not u.active:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User disabled")
  return u
