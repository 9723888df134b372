"""
In-memory item registry tests.
"""

import pytest

from conftest import ALICE, BOB
from mintforge.registry import InMemoryItemRegistry, ItemRegistry, RegistryError


class TestIssuance:

    def test_issue_and_query(self):
        registry = InMemoryItemRegistry()
        registry.issue_unique(ALICE, 1)
        registry.issue_unique(ALICE, 2)
        registry.issue_unique(BOB, 3)

        assert registry.total_issued() == 3
        assert registry.owner_of(3) == BOB
        assert registry.balance_of(ALICE) == 2
        assert registry.items_of(ALICE) == [1, 2]
        assert registry.holders() == {ALICE: 2, BOB: 1}

    def test_duplicate_rejected(self):
        registry = InMemoryItemRegistry()
        registry.issue_unique(ALICE, 1)
        with pytest.raises(RegistryError):
            registry.issue_unique(BOB, 1)
        assert registry.owner_of(1) == ALICE

    @pytest.mark.parametrize("item_id", [0, -1, True, "1"])
    def test_invalid_item_id(self, item_id):
        with pytest.raises(RegistryError):
            InMemoryItemRegistry().issue_unique(ALICE, item_id)

    def test_retract(self):
        registry = InMemoryItemRegistry()
        registry.issue_unique(ALICE, 1)
        registry.retract(1)
        assert registry.total_issued() == 0
        with pytest.raises(RegistryError):
            registry.retract(1)


class TestMetadataLocation:

    def test_item_location(self):
        registry = InMemoryItemRegistry(base_location="https://meta.example/items/")
        registry.issue_unique(ALICE, 7)
        assert registry.item_location(7) == "https://meta.example/items/7"

    def test_no_base_location(self):
        registry = InMemoryItemRegistry()
        registry.issue_unique(ALICE, 1)
        assert registry.item_location(1) == ""

    def test_unissued_item(self):
        with pytest.raises(RegistryError):
            InMemoryItemRegistry("ipfs://x/").item_location(1)

    def test_set_base_location(self):
        registry = InMemoryItemRegistry()
        registry.set_base_location("ipfs://new/")
        assert registry.base_location == "ipfs://new/"

    def test_registry_without_location_support(self):
        class Minimal(ItemRegistry):
            def issue_unique(self, to, item_id):
                pass

            def total_issued(self):
                return 0

            def retract(self, item_id):
                pass

        with pytest.raises(RegistryError):
            Minimal().set_base_location("ipfs://x/")


class TestRegistrySnapshot:

    def test_round_trip(self):
        registry = InMemoryItemRegistry("ipfs://x/")
        registry.issue_unique(ALICE, 2)
        registry.issue_unique(BOB, 10)
        data = registry.snapshot()
        assert data == {"base_location": "ipfs://x/", "owners": {"2": ALICE, "10": BOB}}

        restored = InMemoryItemRegistry.from_snapshot(data)
        assert restored.owner_of(10) == BOB
        assert restored.total_issued() == 2
        assert restored.next_item_id() == 11


class TestNextItemId:

    def test_follows_highest_id(self):
        registry = InMemoryItemRegistry()
        assert registry.next_item_id() == 1
        registry.issue_unique(ALICE, 1)
        registry.issue_unique(ALICE, 2)
        registry.issue_unique(ALICE, 3)
        registry.retract(2)
        assert registry.total_issued() == 2
        assert registry.next_item_id() == 4

    def test_retracting_newest_frees_its_id(self):
        registry = InMemoryItemRegistry()
        registry.issue_unique(ALICE, 1)
        registry.issue_unique(ALICE, 2)
        registry.retract(2)
        assert registry.next_item_id() == 2

    def test_default_uses_count(self):
        class Counting(ItemRegistry):
            def issue_unique(self, to, item_id):
                pass

            def total_issued(self):
                return 4

            def retract(self, item_id):
                pass

        assert Counting().next_item_id() == 5
