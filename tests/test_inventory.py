"""Tests for the inventory ledger, including concurrent reservations."""
import threading

import pytest
from bson import ObjectId

from ticketing.inventory import (InsufficientInventory, InvalidQuantity, Reserved,
                                 TicketNotFound)


def available(db, ticket_id):
    return db["tickets"].find_one({"_id": ticket_id})["tickets_available"]


class TestReserve:
    def test_decrements_and_returns_post_count(self, db, ledger, make_ticket):
        tid = make_ticket(available=5)
        result = ledger.reserve(tid, 2)
        assert isinstance(result, Reserved)
        assert result.ticket.tickets_available == 3
        assert available(db, tid) == 3

    def test_can_take_the_last_tickets(self, db, ledger, make_ticket):
        tid = make_ticket(available=3)
        assert isinstance(ledger.reserve(tid, 3), Reserved)
        assert available(db, tid) == 0

    def test_insufficient_changes_nothing(self, db, ledger, make_ticket):
        tid = make_ticket(available=2)
        result = ledger.reserve(tid, 3)
        assert result == InsufficientInventory(tid, 3, 2)
        assert available(db, tid) == 2

    def test_sold_out(self, db, ledger, make_ticket):
        tid = make_ticket(available=0)
        assert isinstance(ledger.reserve(tid, 1), InsufficientInventory)
        assert available(db, tid) == 0

    def test_unknown_ticket(self, ledger):
        tid = ObjectId()
        assert ledger.reserve(tid, 1) == TicketNotFound(tid)

    @pytest.mark.parametrize("quantity", [0, -1, True, 1.5, "2"])
    def test_rejects_bad_quantity(self, db, ledger, make_ticket, quantity):
        tid = make_ticket(available=5)
        with pytest.raises(InvalidQuantity):
            ledger.reserve(tid, quantity)
        assert available(db, tid) == 5


class TestRelease:
    def test_restores_reserved_tickets(self, db, ledger, make_ticket):
        tid = make_ticket(available=5)
        ledger.reserve(tid, 4)
        ledger.release(tid, 4)
        assert available(db, tid) == 5

    def test_release_of_deleted_ticket_is_quiet(self, ledger):
        ledger.release(ObjectId(), 2)

    def test_rejects_bad_quantity(self, ledger, make_ticket):
        tid = make_ticket()
        with pytest.raises(InvalidQuantity):
            ledger.release(tid, 0)


def race(ledger, ticket_id, quantities):
    barrier = threading.Barrier(len(quantities))
    results = []

    def worker(q):
        barrier.wait()
        results.append(ledger.reserve(ticket_id, q))

    threads = [threading.Thread(target=worker, args=(q,)) for q in quantities]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


class TestConcurrency:
    def test_two_buyers_for_more_than_remains(self, db, serialized_ledger, make_ticket):
        tid = make_ticket(available=5)

        results = race(serialized_ledger, tid, [3, 3])

        assert sum(isinstance(r, Reserved) for r in results) == 1
        assert sum(isinstance(r, InsufficientInventory) for r in results) == 1
        assert available(db, tid) == 2

    def test_many_buyers_never_oversell(self, db, serialized_ledger, make_ticket):
        tid = make_ticket(available=10)

        results = race(serialized_ledger, tid, [1] * 25)

        assert sum(isinstance(r, Reserved) for r in results) == 10
        assert available(db, tid) == 0
        # each success saw a distinct post-decrement count
        seen = sorted(r.ticket.tickets_available for r in results if isinstance(r, Reserved))
        assert seen == list(range(10))
