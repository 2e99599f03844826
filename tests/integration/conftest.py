"""Shared fixtures for integration tests (live PubMed and iCite)."""

import pytest

from scientific_query.data_sources.icite import ICiteClient
from scientific_query.data_sources.pubmed import PubMedClient


@pytest.fixture()
async def pubmed_client():
    """Create and tear down a PubMedClient."""
    c = PubMedClient()
    yield c
    await c.close()


@pytest.fixture()
async def icite_client():
    """Create and tear down an ICiteClient."""
    c = ICiteClient()
    yield c
    await c.close()
