from __future__ import annotations

import asyncio

from .db import Base, engine
from . import models  # noqa: F401
from .seed import seed


async def init_models(seed_demo: bool = True) -> None:
	async with engine.begin() as conn:
		await conn.run_sync(Base.metadata.create_all)
	# Demo data is idempotent
	if seed_demo:
		await seed()


if __name__ == "__main__":
	asyncio.run(init_models())
