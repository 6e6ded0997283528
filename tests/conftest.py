from __future__ import annotations

import pytest

from cloudenv.common.config import Settings, get_settings
from cloudenv.services.object_provider import ObjectProvider
from tests.services.mock_storage import MockStorageClient


@pytest.fixture(autouse=True)
def reset_settings_cache():
    get_settings.cache_clear()  # type: ignore[attr-defined]
    yield
    get_settings.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture()
def settings() -> Settings:
    return Settings(ENABLE_METRICS=False, LIST_PAGE_SIZE=2)


@pytest.fixture()
def mock_storage() -> MockStorageClient:
    storage = MockStorageClient()
    storage.buckets.add("b")
    return storage


@pytest.fixture()
def provider(settings, mock_storage) -> ObjectProvider:
    return ObjectProvider(settings=settings, storage_client=mock_storage)
