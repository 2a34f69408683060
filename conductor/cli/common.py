"""Helpers shared by CLI commands."""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from conductor.config import get_settings
from conductor.daemon import Services, build_services


@asynccontextmanager
async def open_services() -> AsyncIterator[Services]:
    """Build the service graph against the configured database for one command."""
    services = build_services(get_settings())
    await services.db.create_all()
    try:
        yield services
    finally:
        await services.db.close()
