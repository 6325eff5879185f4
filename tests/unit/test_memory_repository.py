"""Unit tests for the in-memory database backend and backend factory."""

import pytest

from invoicing.database.factory import RepositoryRegistry, create_repository
from invoicing.database.memory import MemoryRepository
from invoicing.database.supabase import SupabaseRepository
from invoicing.shared.config import Settings


@pytest.fixture
def repository() -> MemoryRepository:
    repo = MemoryRepository(Settings(_env_file=None))
    repo.insert("invoices", {"id": "a", "user_id": "u1", "status": "sent", "total": "10.00"})
    repo.insert("invoices", {"id": "b", "user_id": "u1", "status": "paid", "total": "30.00"})
    repo.insert("invoices", {"id": "c", "user_id": "u2", "status": "draft", "total": None})
    return repo


class TestMemoryRepository:
    def test_select_with_scalar_and_list_filters(self, repository: MemoryRepository) -> None:
        assert [r["id"] for r in repository.select("invoices", user_id="u1")] == ["a", "b"]
        assert [r["id"] for r in repository.select("invoices", status=["paid", "draft"])] == [
            "b",
            "c",
        ]

    def test_none_filter_matches_null(self, repository: MemoryRepository) -> None:
        assert [r["id"] for r in repository.select("invoices", total=None)] == ["c"]

    def test_order_by_puts_none_first(self, repository: MemoryRepository) -> None:
        rows = repository.select("invoices", order_by="total")
        assert [r["id"] for r in rows] == ["c", "a", "b"]

        rows = repository.select("invoices", order_by="total", descending=True)
        assert [r["id"] for r in rows] == ["b", "a", "c"]

    def test_returned_rows_are_copies(self, repository: MemoryRepository) -> None:
        row = repository.get("invoices", "a")
        assert row is not None
        row["status"] = "mutated"

        assert repository.get("invoices", "a")["status"] == "sent"  # type: ignore[index]

    def test_update_and_delete(self, repository: MemoryRepository) -> None:
        updated = repository.update("invoices", "a", {"status": "paid"})

        assert updated is not None and updated["status"] == "paid"
        assert repository.update("invoices", "missing", {"status": "paid"}) is None
        assert repository.count("invoices", status="paid") == 2

        assert repository.delete("invoices", "b") is True
        assert repository.delete("invoices", "b") is False
        assert repository.delete_where("invoices", user_id="u2") == 1

    def test_upsert_merges_on_conflict_column(self, repository: MemoryRepository) -> None:
        repository.upsert("settings", {"user_id": "u1", "business_name": "Old"}, "user_id")
        merged = repository.upsert("settings", {"user_id": "u1", "logo": "x"}, "user_id")

        assert merged == {"user_id": "u1", "business_name": "Old", "logo": "x"}
        assert repository.count("settings") == 1

    def test_unknown_table_is_empty(self, repository: MemoryRepository) -> None:
        assert repository.select("nothing") == []


class TestRepositoryFactory:
    def test_default_backend_is_memory(self) -> None:
        repo = create_repository(Settings(_env_file=None))
        assert isinstance(repo, MemoryRepository)
        assert repo.provider_name == "memory"

    def test_supabase_backend(self) -> None:
        repo = create_repository(Settings(_env_file=None, database_provider="supabase"))
        assert isinstance(repo, SupabaseRepository)

    def test_unknown_backend_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown database backend"):
            RepositoryRegistry.get_backend_class("oracle")

    def test_list_backends(self) -> None:
        assert {"memory", "supabase"} <= set(RepositoryRegistry.list_backends())
