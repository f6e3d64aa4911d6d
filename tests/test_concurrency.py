"""Stale-snapshot writers: last write wins, and the loss is silent.

The in-memory store is run with deferred pushes so a second client writes
from a snapshot that does not yet contain the first client's write.
"""

from tableorder.core.rbac import ClientRole
from tableorder.db.store import InMemoryDocumentStore
from tableorder.schemas.order import OrderStatus
from tableorder.services.client_session import ClientSession
from tableorder.services.sync_service import sanitize_document


def _customer(store, table):
    session = ClientSession(store, ClientRole.CUSTOMER).open()
    session.cart.branch_id = "cn1"
    session.cart.table_number = str(table)
    session.add_to_cart("m1")
    return session


class TestLostUpdates:
    def test_concurrent_submissions_drop_the_first_order(self, seed_document):
        store = InMemoryDocumentStore(seed_document, defer_pushes=True)
        alice, bob = _customer(store, 1), _customer(store, 2)

        first = alice.submit_order(timestamp=1000)
        second = bob.submit_order(timestamp=1001)
        store.flush_pushes()

        ids = [o.id for o in sanitize_document(store.read_all()).orders]
        assert ids == [second.id]
        assert first.id not in ids
        # Both clients converge on the surviving state
        assert [o.id for o in alice.snapshot.orders] == [second.id]
        assert [o.id for o in bob.snapshot.orders] == [second.id]

    def test_sequential_submissions_keep_both_orders(self, seed_document):
        store = InMemoryDocumentStore(seed_document)
        alice, bob = _customer(store, 1), _customer(store, 2)

        first = alice.submit_order(timestamp=1000)
        second = bob.submit_order(timestamp=1001)

        ids = [o.id for o in sanitize_document(store.read_all()).orders]
        assert ids == [second.id, first.id]

    def test_stale_admin_overwrites_kitchen_completion(self, seed_document):
        store = InMemoryDocumentStore(seed_document)
        customer = _customer(store, 1)
        placed = customer.submit_order(timestamp=1000)
        customer.cart.branch_id = "cn1"
        customer.cart.table_number = "2"
        customer.add_to_cart("m4")
        other = customer.submit_order(timestamp=1001)

        deferred = InMemoryDocumentStore(store.read_all(), defer_pushes=True)
        kitchen = ClientSession(deferred, ClientRole.KITCHEN).open()
        kitchen.login("admin", "123")
        admin = ClientSession(deferred, ClientRole.ADMIN).open()
        admin.login("admin", "123")

        kitchen.complete_order(placed.id)
        # Admin still sees both orders NEW and edits the other one
        admin.add_item_to_order(other.id, "m1")
        deferred.flush_pushes()

        final = sanitize_document(deferred.read_all())
        assert final.order(placed.id).status == OrderStatus.NEW
        assert final.order(other.id).total == 250000 + 45000
