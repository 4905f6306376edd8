import pytest

from api.container import build_container
from core.config import Settings
from ledger.models import CreateAccountRequest


@pytest.fixture
def settings():
    # Generous retry budget so thread-heavy tests never exhaust it
    return Settings(
        _env_file=None,
        transaction_max_attempts=200,
        transaction_backoff_base=0.001,
        transaction_backoff_max=0.01,
    )


@pytest.fixture
def container(settings):
    container = build_container(settings)
    yield container
    container.close()


@pytest.fixture
def store(container):
    return container.store


@pytest.fixture
def make_account(container):
    def _make(user_id, name=None, username=None, initial_balance=None):
        return container.accounts.create_account(CreateAccountRequest(
            user_id=user_id,
            name=name or user_id.capitalize(),
            username=username or user_id.replace("-", "_"),
            email=f"{user_id}@example.edu",
            initial_balance=initial_balance,
        ))
    return _make
