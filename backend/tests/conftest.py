import pytest

from fakes import FakeUnitOfWork, InMemoryStore


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def uow(store: InMemoryStore) -> FakeUnitOfWork:
    return FakeUnitOfWork(store)
