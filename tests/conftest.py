import pytest
from fastapi.testclient import TestClient

import main
from search_store import InMemoryAnalysisStore
from tests.fakes import FakeOpenAI


@pytest.fixture
def fake_llm() -> FakeOpenAI:
    return FakeOpenAI(content="{}")


@pytest.fixture
def store() -> InMemoryAnalysisStore:
    return InMemoryAnalysisStore()


@pytest.fixture
def client(fake_llm, store):
    main.app.dependency_overrides[main.get_llm_client] = lambda: fake_llm
    main.app.dependency_overrides[main.get_store] = lambda: store
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()
