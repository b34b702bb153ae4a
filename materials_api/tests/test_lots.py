from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import update

from src.core.errors import (
    InsufficientQuantityError,
    InsufficientStockError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from src.db.models.enums import LotStatus, PickingPolicy, ReservationStatus, TransactionType
from src.db.models.inventory import BatchLot
from src.repositories.inventory import LotRepository
from src.schemas.inventory import LotReceive
from src.services.lot_lifecycle import effective_status
from src.services.lots import LotService

DAY_1 = date(2024, 3, 1)


def day(n: int) -> date:
    return DAY_1.replace(day=n)


class TestReceive:
    """Goods receipt"""

    async def test_creates_available_lot_and_ledger_entry(self, lots, receive, bin_a):
        lot = await receive(40, unit_cost="9.5")

        assert lot.status == LotStatus.AVAILABLE
        assert lot.remaining_quantity == 40
        assert lot.reserved_quantity == 0
        assert lot.location_id == bin_a.id
        assert lot.batch_number.startswith("M1-20240301-")
        txns = await lots.list_transactions(lot_id=lot.id)
        assert [t.txn_type for t in txns] == [TransactionType.RECEIPT]
        assert txns[0].quantity == 40

    async def test_rejects_non_positive_quantity(self, lots, raw_material):
        with pytest.raises(ValidationError):
            await lots.receive_lot(
                LotReceive(material_id=raw_material.id, quantity=Decimal("0"), unit_cost=Decimal("1"))
            )

    async def test_duplicate_batch_number(self, receive):
        await receive(10, batch_number="B-1")
        with pytest.raises(ValidationError):
            await receive(10, batch_number="B-1")

    async def test_unknown_material(self, lots):
        with pytest.raises(NotFoundError):
            await lots.receive_lot(LotReceive(material_id=uuid4(), quantity=Decimal("1"), unit_cost=Decimal("1")))


class TestReservations:
    """Holds on part of a lot"""

    async def test_full_hold_marks_lot_reserved(self, lots, receive):
        lot = await receive(40)
        reservation = await lots.reserve(lot.id, Decimal("40"), reference_type="SalesOrder", reference_id="SO-1")

        lot = await lots.get_lot(lot.id)
        assert lot.status == LotStatus.RESERVED
        assert lot.reserved_quantity == 40
        assert lot.remaining_quantity == 40
        assert reservation.status == ReservationStatus.ACTIVE

    async def test_partial_hold_keeps_lot_available(self, lots, receive):
        lot = await receive(40)
        await lots.reserve(lot.id, Decimal("15"))
        lot = await lots.get_lot(lot.id)
        assert lot.status == LotStatus.AVAILABLE
        assert lot.reserved_quantity == 15

    async def test_cannot_hold_more_than_free(self, lots, receive):
        lot = await receive(40)
        await lots.reserve(lot.id, Decimal("30"))
        with pytest.raises(InsufficientQuantityError):
            await lots.reserve(lot.id, Decimal("11"))

    async def test_held_quantity_is_not_free_for_others(self, lots, receive):
        lot = await receive(40)
        await lots.reserve(lot.id, Decimal("40"))
        with pytest.raises(InsufficientQuantityError):
            await lots.consume(lot.id, Decimal("10"))

    async def test_consume_against_reservation(self, lots, receive):
        lot = await receive(40)
        reservation = await lots.reserve(lot.id, Decimal("40"))

        lot = await lots.consume(lot.id, Decimal("10"), reservation_id=reservation.id)

        assert lot.remaining_quantity == 30
        assert lot.reserved_quantity == 30
        assert lot.status == LotStatus.RESERVED
        assert reservation.fulfilled_quantity == 10
        assert reservation.status == ReservationStatus.ACTIVE

    async def test_fulfilling_reservation(self, lots, receive):
        lot = await receive(40)
        reservation = await lots.reserve(lot.id, Decimal("25"))

        lot = await lots.consume(lot.id, Decimal("25"), reservation_id=reservation.id)

        assert reservation.status == ReservationStatus.FULFILLED
        assert lot.remaining_quantity == 15
        assert lot.reserved_quantity == 0
        assert lot.status == LotStatus.AVAILABLE

    async def test_cancel_releases_hold(self, lots, receive):
        lot = await receive(40)
        reservation = await lots.reserve(lot.id, Decimal("40"))

        cancelled = await lots.cancel_reservation(reservation.id)

        lot = await lots.get_lot(lot.id)
        assert cancelled.status == ReservationStatus.CANCELLED
        assert lot.reserved_quantity == 0
        assert lot.status == LotStatus.AVAILABLE
        with pytest.raises(InvalidStateTransitionError):
            await lots.cancel_reservation(reservation.id)


class TestConsume:
    """Consumption and quantity bounds"""

    async def test_partial_then_full(self, lots, receive):
        lot = await receive(40)
        lot = await lots.consume(lot.id, Decimal("30"))
        assert lot.remaining_quantity == 10
        assert lot.status == LotStatus.AVAILABLE

        lot = await lots.consume(lot.id, Decimal("10"))
        assert lot.remaining_quantity == 0
        assert lot.status == LotStatus.CONSUMED

    async def test_never_goes_below_zero(self, lots, receive):
        lot = await receive(40)
        with pytest.raises(InsufficientQuantityError):
            await lots.consume(lot.id, Decimal("40.000001"))
        lot = await lots.lots.get_lot(lot.id, fresh=True)
        assert lot.remaining_quantity == 40

    async def test_non_positive_quantity(self, lots, receive):
        lot = await receive(40)
        with pytest.raises(ValidationError):
            await lots.consume(lot.id, Decimal("0"))

    async def test_unknown_lot(self, lots):
        with pytest.raises(NotFoundError):
            await lots.consume(uuid4(), Decimal("1"))


class TestConcurrentUpdates:
    """Version-guarded read-check-write on lot quantities"""

    @staticmethod
    def _race_once(monkeypatch, lots, session, competitor_quantity):
        """Let a competing consumption land between our read and our write, once."""
        original = lots.lots.compare_and_set
        state = {"raced": False}

        async def racing_compare_and_set(lot_id, expected_version, values):
            if not state["raced"]:
                state["raced"] = True
                await session.execute(
                    update(BatchLot)
                    .where(BatchLot.id == lot_id)
                    .values(
                        remaining_quantity=BatchLot.remaining_quantity - competitor_quantity,
                        version=BatchLot.version + 1,
                    )
                    .execution_options(synchronize_session=False)
                )
            return await original(lot_id, expected_version, values)

        monkeypatch.setattr(lots.lots, "compare_and_set", racing_compare_and_set)

    async def test_two_consumers_of_thirty_against_forty(self, monkeypatch, lots, receive, session):
        lot = await receive(40)
        self._race_once(monkeypatch, lots, session, Decimal("30"))

        with pytest.raises(InsufficientQuantityError):
            await lots.consume(lot.id, Decimal("30"))

        lot = await lots.lots.get_lot(lot.id, fresh=True)
        assert lot.remaining_quantity == 10

    async def test_lost_race_is_retried(self, monkeypatch, lots, receive, session):
        lot = await receive(100)
        self._race_once(monkeypatch, lots, session, Decimal("30"))

        lot = await lots.consume(lot.id, Decimal("30"))

        assert lot.remaining_quantity == 40
        assert lot.version == 3

    async def test_gives_up_after_max_attempts(self, monkeypatch, lots, receive, settings):
        lot = await receive(100)
        calls = []

        async def always_stale(lot_id, expected_version, values):
            calls.append(expected_version)
            return False

        monkeypatch.setattr(lots.lots, "compare_and_set", always_stale)
        with pytest.raises(InsufficientQuantityError):
            await lots.consume(lot.id, Decimal("1"))
        assert len(calls) == settings.LOT_UPDATE_MAX_ATTEMPTS


    async def test_stale_writer_on_another_connection_loses(self, lots, receive, session_factory, settings):
        lot = await receive(40)

        async with session_factory() as other_session:
            other_repo = LotRepository(other_session)
            stale_version = (await other_repo.get_lot(lot.id)).version
            await other_session.rollback()

            await lots.consume(lot.id, Decimal("30"))

            applied = await other_repo.compare_and_set(lot.id, stale_version, {"remaining_quantity": Decimal("10")})
            assert not applied
            await other_session.rollback()

            with pytest.raises(InsufficientQuantityError):
                await LotService(other_session, settings).consume(lot.id, Decimal("30"))
            await other_session.rollback()

        lot = await lots.lots.get_lot(lot.id, fresh=True)
        assert lot.remaining_quantity == 10
        assert lot.version == 2


class TestLifecycle:
    """Quality holds and terminal states"""

    async def test_quarantine_then_release(self, lots, receive):
        lot = await receive(40)
        lot = await lots.quarantine(lot.id, "supplier complaint")
        assert lot.status == LotStatus.QUARANTINE
        assert lot.hold_reason == "supplier complaint"

        lot = await lots.release(lot.id)
        assert lot.status == LotStatus.AVAILABLE
        assert lot.hold_reason is None

    async def test_held_lot_cannot_be_consumed(self, lots, receive):
        lot = await receive(40)
        await lots.quarantine(lot.id, "inspection", hold_status=LotStatus.IN_QA)
        with pytest.raises(InvalidStateTransitionError):
            await lots.consume(lot.id, Decimal("1"))

    async def test_reject_writes_off_remaining_stock(self, lots, receive):
        lot = await receive(40)
        await lots.reserve(lot.id, Decimal("10"))
        await lots.quarantine(lot.id, "contamination")

        lot = await lots.reject(lot.id, "contamination confirmed")

        assert lot.status == LotStatus.REJECTED
        assert lot.reserved_quantity == 0
        assert await lots.list_reservations(lot.id) == []
        txns = await lots.list_transactions(lot_id=lot.id)
        write_off = next(t for t in txns if t.txn_type == TransactionType.REJECT)
        assert write_off.quantity == -40

    async def test_available_lot_cannot_be_rejected_directly(self, lots, receive):
        lot = await receive(40)
        with pytest.raises(InvalidStateTransitionError):
            await lots.reject(lot.id, "no hold")

    async def test_release_requires_a_hold(self, lots, receive):
        lot = await receive(40)
        with pytest.raises(InvalidStateTransitionError):
            await lots.release(lot.id)

    async def test_terminal_states_are_final(self, lots, receive):
        consumed = await receive(10)
        await lots.consume(consumed.id, Decimal("10"))
        recalled = await receive(10)
        await lots.recall(recalled.id, "supplier recall")

        for lot_id in (consumed.id, recalled.id):
            with pytest.raises(InvalidStateTransitionError):
                await lots.reserve(lot_id, Decimal("1"))
            with pytest.raises(InvalidStateTransitionError):
                await lots.quarantine(lot_id, "late hold")
            with pytest.raises(InvalidStateTransitionError):
                await lots.recall(lot_id, "again")

    async def test_expired_lot_reads_expired_and_is_frozen(self, lots, receive):
        lot = await receive(30, expiration=day(5))

        assert lot.status == LotStatus.AVAILABLE
        assert effective_status(lot, day(6)) == LotStatus.EXPIRED
        assert effective_status(lot, day(5)) == LotStatus.AVAILABLE
        # Expiry is in the past relative to the real clock as well.
        with pytest.raises(InvalidStateTransitionError):
            await lots.consume(lot.id, Decimal("1"))


class TestLotSelection:
    """Picking policies"""

    async def test_expired_lot_excluded(self, lots, receive, raw_material):
        await receive(30, expiration=day(5))
        with pytest.raises(InsufficientStockError):
            await lots.select_lots_for_consumption(raw_material.id, Decimal("10"), as_of=day(6))

    async def test_policies_order_lots(self, lots, receive, raw_material):
        await receive(30, received=day(1), expiration=day(20), batch_number="A")
        await receive(30, received=day(2), expiration=day(10), batch_number="B")
        await receive(30, received=day(3), batch_number="C")

        async def picked(policy):
            plan = await lots.select_lots_for_consumption(raw_material.id, Decimal("70"), policy, as_of=day(4))
            return [(a.lot.batch_number, a.quantity) for a in plan]

        assert await picked(PickingPolicy.FEFO) == [("B", 30), ("A", 30), ("C", 10)]
        assert await picked(PickingPolicy.FIFO) == [("A", 30), ("B", 30), ("C", 10)]
        assert await picked(PickingPolicy.LIFO) == [("C", 30), ("B", 30), ("A", 10)]

    @pytest.mark.parametrize("policy", list(PickingPolicy))
    async def test_expired_lot_skipped_under_every_policy(self, policy, lots, receive, raw_material):
        await receive(30, received=day(1), expiration=day(5), batch_number="OLD")
        await receive(20, received=day(2), batch_number="FRESH")

        plan = await lots.select_lots_for_consumption(raw_material.id, Decimal("20"), policy, as_of=day(6))

        assert [(a.lot.batch_number, a.quantity) for a in plan] == [("FRESH", 20)]
        with pytest.raises(InsufficientStockError):
            await lots.select_lots_for_consumption(raw_material.id, Decimal("21"), policy, as_of=day(6))

    async def test_fefo_same_expiry_takes_earliest_receipt(self, lots, receive, raw_material):
        await receive(10, received=day(3), expiration=day(20), batch_number="LATE")
        await receive(10, received=day(1), expiration=day(20), batch_number="EARLY")

        plan = await lots.select_lots_for_consumption(
            raw_material.id, Decimal("15"), PickingPolicy.FEFO, as_of=day(4)
        )

        assert [(a.lot.batch_number, a.quantity) for a in plan] == [("EARLY", 10), ("LATE", 5)]

    async def test_allocations_never_exceed_free_quantity(self, lots, receive, raw_material):
        first = await receive(30, received=day(1))
        await receive(30, received=day(2))
        await lots.reserve(first.id, Decimal("25"))

        plan = await lots.select_lots_for_consumption(
            raw_material.id, Decimal("20"), PickingPolicy.FIFO, as_of=day(3)
        )

        assert [a.quantity for a in plan] == [5, 15]

    async def test_lots_received_later_are_ignored(self, lots, receive, raw_material):
        await receive(30, received=day(10))
        with pytest.raises(InsufficientStockError):
            await lots.select_lots_for_consumption(raw_material.id, Decimal("1"), as_of=day(9))

    async def test_issue_consumes_every_allocation(self, lots, receive, raw_material):
        first = await receive(30, received=day(1))
        second = await receive(30, received=day(2))

        issued = await lots.issue_material(raw_material.id, Decimal("45"), PickingPolicy.FIFO)

        assert [a.lot.id for a in issued] == [first.id, second.id]
        assert issued[0].lot.status == LotStatus.CONSUMED
        assert issued[1].lot.remaining_quantity == 15


class TestSplit:
    """Repacking into child lots"""

    async def test_split_keeps_cost_and_traceability(self, lots, receive):
        parent = await receive(50, unit_cost="7.25", expiration=date(2099, 1, 1))

        child = await lots.split_lot(parent.id, Decimal("20"), batch_number="CHILD-1")

        parent = await lots.get_lot(parent.id)
        assert parent.remaining_quantity == 30
        assert child.parent_lot_id == parent.id
        assert child.remaining_quantity == 20
        assert child.unit_cost == Decimal("7.25")
        assert child.expiration_date == parent.expiration_date
        txns = await lots.list_transactions(lot_id=child.id)
        assert [t.txn_type for t in txns] == [TransactionType.SPLIT_IN]

    async def test_cannot_split_held_quantity(self, lots, receive):
        parent = await receive(50)
        await lots.reserve(parent.id, Decimal("40"))
        with pytest.raises(InsufficientQuantityError):
            await lots.split_lot(parent.id, Decimal("20"))

    async def test_split_leaving_only_held_stock_marks_parent_reserved(self, lots, receive):
        parent = await receive(100)
        await lots.reserve(parent.id, Decimal("30"))

        await lots.split_lot(parent.id, Decimal("70"))

        parent = await lots.get_lot(parent.id)
        assert parent.remaining_quantity == 30
        assert parent.reserved_quantity == 30
        assert parent.status == LotStatus.RESERVED
