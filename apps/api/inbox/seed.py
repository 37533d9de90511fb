from __future__ import annotations

import asyncio
import os

from sqlalchemy import select

from inbox.db import SessionLocal
from inbox.models import User
from inbox.security import api_token_hash, new_api_token


async def seed() -> str:
  """Create the bootstrap user, or rotate its token, and return the new API token."""
  email = (os.getenv("SEED_USER_EMAIL") or "me@inbox.local").strip()
  name = (os.getenv("SEED_USER_NAME") or "Me").strip()
  token = new_api_token()
  async with SessionLocal() as db:
    res = await db.execute(select(User).where(User.email == email))
    user = res.scalar_one_or_none()
    if user is None:
      user = User(email=email, name=name)
      db.add(user)
    user.api_token_hash = api_token_hash(token)
    await db.commit()
  return token


def main() -> None:
  token = asyncio.run(seed())
  print(f"{(os.getenv('SEED_USER_EMAIL') or 'me@inbox.local').strip()} token={token}")


if __name__ == "__main__":
  main()
