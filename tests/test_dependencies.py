import pytest

from conftest import StubEmbeddingService
from piece_search.core.dependencies import ServiceContainer


class _ClosableClient:
    def __init__(self):
        self.closed = False

    async def close(self):
        self.closed = True


@pytest.mark.asyncio
async def test_shutdown_closes_and_forgets_client(content_dir, store_path):
    embedding_service = StubEmbeddingService()
    client = _ClosableClient()
    embedding_service.client = client
    container = ServiceContainer(
        content_dir=str(content_dir),
        store_path=str(store_path),
        embedding_service=embedding_service,
    )

    await container.shutdown()

    assert client.closed
    assert embedding_service.client is None


@pytest.mark.asyncio
async def test_initialize_tolerates_missing_store(content_dir, store_path):
    container = ServiceContainer(
        content_dir=str(content_dir),
        store_path=str(store_path),
        embedding_service=StubEmbeddingService(),
    )

    await container.initialize()

    assert not container.retrieval_service.store_loaded
