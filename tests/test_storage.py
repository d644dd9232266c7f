"""Tests for ledger storage backends."""

import json
import threading
from datetime import datetime
from decimal import Decimal

import httpx
import pytest

from splitledger.config import Settings
from splitledger.exceptions import ConfigurationError, StorageError, ValidationError
from splitledger.models import Group, NewExpense, NewGroup, NewSettlement, NewUser, Split
from splitledger.storage import (
    MemoryRepository,
    SqliteRepository,
    SupabaseRepository,
    create_repository,
)


@pytest.fixture(params=["memory", "sqlite"])
def repository(request, tmp_path):
    """Run contract tests against each local backend."""
    if request.param == "memory":
        repo = MemoryRepository()
    else:
        repo = SqliteRepository(tmp_path / "ledger.db")
    yield repo
    repo.close()


@pytest.fixture
def group(repository):
    """A group of two users."""
    alice = repository.create_user(NewUser(username="alice", email="a@x.io", name="Alice"))
    bob = repository.create_user(NewUser(username="bob", email="b@x.io", name="Bob"))
    return repository.create_group(
        NewGroup(name="Flat", created_by=alice.id, participants=[alice.id, bob.id])
    )


def new_expense(group, amount: str = "20.00") -> NewExpense:
    alice, bob = group.participants
    half = (Decimal(amount) / 2).quantize(Decimal("0.01"))
    return NewExpense(
        group_id=group.id,
        description="Groceries",
        amount=Decimal(amount),
        paid_by=alice,
        category="food",
        date=datetime(2025, 3, 1, 12, 0),
        splits=[
            Split(user_id=alice, amount=half),
            Split(user_id=bob, amount=Decimal(amount) - half),
        ],
    )


class TestRepositoryContract:
    """Behavior every backend shares."""

    def test_user_lookups(self, repository):
        """Users can be found by id, username and email."""
        user = repository.create_user(
            NewUser(username="carol", email="carol@x.io", name="Carol", role="viewer")
        )

        assert repository.get_user(user.id) == user
        assert repository.get_user_by_username("carol") == user
        assert repository.get_user_by_email("carol@x.io") == user
        assert repository.get_user("missing") is None

    def test_group_round_trip(self, repository, group):
        """A stored group reads back unchanged, participants in order."""
        loaded = repository.get_group(group.id)

        assert loaded == group
        assert loaded.participants == group.participants

    def test_update_group(self, repository, group):
        """Updatable fields change; unknown groups return None."""
        updated = repository.update_group(group.id, name="New flat")

        assert updated.name == "New flat"
        assert repository.get_group(group.id).name == "New flat"
        assert repository.update_group("missing", name="x") is None

    def test_update_group_rejects_unknown_fields(self, repository, group):
        """Only whitelisted fields may be updated."""
        with pytest.raises(ValidationError):
            repository.update_group(group.id, created_by="someone")

    def test_list_user_groups(self, repository, group):
        """Membership or authorship makes a group visible to a user."""
        alice, bob = group.participants
        outsider = repository.create_user(NewUser(username="eve", email="e@x.io", name="Eve"))

        assert [g.id for g in repository.list_user_groups(bob)] == [group.id]
        assert repository.list_user_groups(outsider.id) == []

    def test_expense_amounts_are_exact(self, repository, group):
        """Decimal amounts survive storage without float drift."""
        expense = repository.create_expense(new_expense(group, "0.30"))

        loaded = repository.get_expense(expense.id)

        assert loaded.amount == Decimal("0.30")
        assert sum(s.amount for s in loaded.splits) == Decimal("0.30")
        assert loaded == expense

    def test_group_expenses_are_scoped(self, repository, group):
        """Only the group's own expenses are returned."""
        expense = repository.create_expense(new_expense(group))

        assert repository.get_group_expenses(group.id) == [expense]
        assert repository.get_group_expenses("other") == []

    def test_update_and_delete_expense(self, repository, group):
        """Expenses can be edited and removed."""
        expense = repository.create_expense(new_expense(group))

        updated = repository.update_expense(expense.id, description="Market")
        assert updated.description == "Market"
        assert repository.get_expense(expense.id).description == "Market"

        assert repository.delete_expense(expense.id) is True
        assert repository.get_expense(expense.id) is None
        assert repository.delete_expense(expense.id) is False

    def test_settlements(self, repository, group):
        """Settlements are stored with their defaults."""
        alice, bob = group.participants
        settlement = repository.create_settlement(
            NewSettlement(
                group_id=group.id,
                from_user_id=bob,
                to_user_id=alice,
                amount=Decimal("10.00"),
                date=datetime(2025, 3, 2),
            )
        )

        assert settlement.method == "cash"
        assert repository.get_settlement(settlement.id) == settlement
        assert repository.get_group_settlements(group.id) == [settlement]

    def test_context_manager(self, tmp_path):
        """Repositories close on context exit."""
        with SqliteRepository(tmp_path / "ctx.db") as repo:
            repo.create_user(NewUser(username="x", email="x@x.io", name="X"))

        with pytest.raises(Exception):
            repo.list_users()


class TestSqlitePersistence:
    """SQLite-specific behavior."""

    def test_data_survives_reopen(self, tmp_path):
        """Records persist across connections."""
        path = tmp_path / "ledger.db"
        with SqliteRepository(path) as repo:
            user = repo.create_user(NewUser(username="x", email="x@x.io", name="X"))

        with SqliteRepository(path) as repo:
            assert repo.get_user(user.id) == user

    def test_constraint_violation_raises_storage_error(self, tmp_path):
        """Duplicate usernames are a storage error."""
        with SqliteRepository(tmp_path / "ledger.db") as repo:
            repo.create_user(NewUser(username="x", email="x@x.io", name="X"))

            with pytest.raises(StorageError):
                repo.create_user(NewUser(username="x", email="y@x.io", name="Y"))


class TestConcurrentAccess:
    """Reads and writes from several threads at once."""

    def test_memory_reads_during_writes(self):
        """Listing expenses while another thread inserts never fails."""
        repo = MemoryRepository()
        group = Group(id="g1", name="Flat", created_by="a", participants=["a", "b"])
        errors = []
        done = threading.Event()

        def writer():
            try:
                for _ in range(5000):
                    repo.create_expense(new_expense(group))
            finally:
                done.set()

        def reader():
            try:
                while not done.is_set():
                    repo.get_group_expenses(group.id)
                    repo.list_users()
            except RuntimeError as e:
                errors.append(e)

        threads = [threading.Thread(target=writer), threading.Thread(target=reader)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(repo.get_group_expenses(group.id)) == 5000

    def test_concurrent_updates_keep_every_change(self, repository, group):
        """Updates to different fields of one expense are not lost."""
        expense = repository.create_expense(new_expense(group))

        def rename():
            for i in range(50):
                repository.update_expense(expense.id, description=f"Groceries {i}")

        def recategorize():
            for i in range(50):
                repository.update_expense(expense.id, category=f"cat-{i}")

        threads = [threading.Thread(target=rename), threading.Thread(target=recategorize)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        final = repository.get_expense(expense.id)
        assert final.description == "Groceries 49"
        assert final.category == "cat-49"


class TestMemoryDemoData:
    """Demo seeding for the memory backend."""

    def test_seeded_users_and_groups(self):
        """Demo data has four users and two groups."""
        repo = MemoryRepository(seed_demo_data=True)

        assert {u.id for u in repo.list_users()} == {"demo-user", "user-1", "user-2", "user-3"}
        assert repo.get_group("demo-group").name == "Weekend Trip"
        assert repo.get_group("work-group").participants == ["demo-user", "user-1", "user-2"]

    def test_empty_by_default(self):
        """Without seeding the store is empty."""
        assert MemoryRepository().list_users() == []


class TestSupabaseRepository:
    """Supabase backend against a mocked PostgREST endpoint."""

    def make_repo(self, handler) -> SupabaseRepository:
        return SupabaseRepository(
            "https://proj.supabase.co/", "secret", transport=httpx.MockTransport(handler)
        )

    def test_select_sends_filters_and_key(self):
        """Lookups use eq. filters and the API key headers."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            seen["apikey"] = request.headers["apikey"]
            return httpx.Response(
                200,
                json=[{"id": "u1", "username": "al", "email": "a@x.io", "name": "Al", "role": "member"}],
            )

        user = self.make_repo(handler).get_user("u1")

        assert user.username == "al"
        assert seen["path"] == "/rest/v1/users"
        assert seen["params"] == {"select": "*", "id": "eq.u1"}
        assert seen["apikey"] == "secret"

    def test_missing_record_is_none(self):
        """An empty result set means no record."""
        repo = self.make_repo(lambda request: httpx.Response(200, json=[]))

        assert repo.get_group("nope") is None

    def test_expense_amounts_sent_as_strings(self):
        """Decimals are serialized as strings and parsed back exactly."""
        sent = {}

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            sent.update(body)
            return httpx.Response(201, json=[{**body, "id": "e1"}])

        group = MemoryRepository(seed_demo_data=True).get_group("work-group")
        expense = self.make_repo(handler).create_expense(
            NewExpense(
                group_id=group.id,
                description="Lunch",
                amount=Decimal("10.01"),
                paid_by="demo-user",
                date=datetime(2025, 3, 1),
                splits=[
                    Split(user_id="demo-user", amount=Decimal("5.01")),
                    Split(user_id="user-1", amount=Decimal("5.00")),
                ],
            )
        )

        assert sent["amount"] == "10.01"
        assert sent["splits"][0] == {"userId": "demo-user", "amount": "5.01"}
        assert expense.id == "e1"
        assert expense.amount == Decimal("10.01")

    def test_http_error_becomes_storage_error(self):
        """Failed requests raise StorageError."""
        repo = self.make_repo(lambda request: httpx.Response(500, text="boom"))

        with pytest.raises(StorageError) as exc_info:
            repo.list_users()

        assert "500" in str(exc_info.value)


class TestCreateRepository:
    """Tests for backend selection."""

    def test_memory(self):
        """Memory storage seeds demo data when asked."""
        repo = create_repository(Settings(storage_type="memory", seed_demo_data=True))

        assert isinstance(repo, MemoryRepository)
        assert repo.get_user("demo-user") is not None

    def test_database(self, tmp_path):
        """Database storage opens the configured SQLite file."""
        path = tmp_path / "sub" / "ledger.db"

        repo = create_repository(Settings(storage_type="database", database_path=path))

        assert isinstance(repo, SqliteRepository)
        assert path.exists()
        repo.close()

    def test_supabase_requires_credentials(self):
        """Missing Supabase credentials fail at startup."""
        settings = Settings(storage_type="supabase", supabase_url=None, supabase_key=None)

        with pytest.raises(ConfigurationError):
            create_repository(settings)

    def test_supabase(self):
        """Supabase storage is built from the URL and key."""
        settings = Settings(
            storage_type="supabase", supabase_url="https://p.supabase.co", supabase_key="k"
        )

        repo = create_repository(settings)

        assert isinstance(repo, SupabaseRepository)
        repo.close()
