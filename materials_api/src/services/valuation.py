from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Awaitable, Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import InsufficientDataError, NotFoundError, ValidationError
from src.core.settings import AppSettings
from src.db.models.catalog import Material
from src.db.models.enums import TransactionType, ValuationMethod
from src.db.models.inventory import BatchLot
from src.db.models.valuation import MaterialValuation
from src.repositories.inventory import InventoryTransactionRepository, LotRepository
from src.repositories.materials import MaterialRepository
from src.repositories.valuations import ValuationRepository
from src.services.base import BaseService
from src.services.lot_lifecycle import STOCK_STATUSES

logger = logging.getLogger(__name__)

VALUE_QUANTUM = Decimal("0.000001")
ZERO = Decimal("0")

# Repacking moves stock between lots at unchanged cost; it never moves the average.
_AVERAGE_NEUTRAL_TXNS = frozenset({TransactionType.SPLIT_OUT, TransactionType.SPLIT_IN})

Calculator = Callable[[Material, date, Optional[UUID], Optional[Decimal]], Awaitable["ValuationResult"]]

# ValuationMethod -> ValuationService calculator method.
CALCULATORS: Dict[ValuationMethod, str] = {
    ValuationMethod.FIFO: "_value_fifo",
    ValuationMethod.LIFO: "_value_lifo",
    ValuationMethod.MOVING_AVERAGE: "_value_moving_average",
    ValuationMethod.STANDARD_COST: "_value_standard_cost",
    ValuationMethod.BATCH_SPECIFIC: "_value_batch_specific",
}
_uncovered = set(ValuationMethod) - set(CALCULATORS)
if _uncovered:
    raise RuntimeError(f"No valuation calculator for {sorted(m.value for m in _uncovered)}")


def quantize(value: Decimal) -> Decimal:
    return value.quantize(VALUE_QUANTUM, rounding=ROUND_HALF_UP)


@dataclass
class ValuationResult:
    """Outcome of one costing computation, before it is stored."""
    unit_value: Decimal
    quantity_basis: Decimal
    batch_lot_id: Optional[UUID] = None
    variance_amount: Optional[Decimal] = None

    @property
    def total_value(self) -> Decimal:
        return quantize(self.unit_value * self.quantity_basis)


class ValuationService(BaseService):
    """
    Computes and stores material valuations.

    Each ValuationMethod maps to one calculator method through CALCULATORS.
    """

    def __init__(self, session: AsyncSession, settings: Optional[AppSettings] = None) -> None:
        super().__init__(session, settings)
        self.materials = MaterialRepository(session)
        self.lots = LotRepository(session)
        self.txns = InventoryTransactionRepository(session)
        self.valuations = ValuationRepository(session)

    # PUBLIC_INTERFACE
    async def record_valuation(
        self,
        material_id: UUID,
        method: ValuationMethod,
        as_of_date: Optional[date] = None,
        *,
        batch_lot_id: Optional[UUID] = None,
        quantity: Optional[Decimal] = None,
        reason: Optional[str] = None,
        commit: bool = True,
    ) -> MaterialValuation:
        """
        Compute the unit value of a material under `method` as of `as_of_date`
        and store it as the new active valuation.

        The previous active record for the same (material, method), or
        (material, lot) for batch-specific costing, is deactivated and its unit
        value kept as `previous_unit_value`.

        Raises:
            NotFoundError: unknown material or lot.
            ValidationError: bad quantity, or a batch-specific request without a lot.
            InsufficientDataError: FIFO/LIFO/batch-specific without lot data.
        """
        material = await self.materials.get_material(material_id)
        if material is None:
            raise NotFoundError.for_entity("Material", material_id)
        if quantity is not None and quantity <= 0:
            raise ValidationError("quantity must be > 0", details={"quantity": str(quantity)})
        as_of = as_of_date or date.today()

        calculator: Calculator = getattr(self, CALCULATORS[method])
        result = await calculator(material, as_of, batch_lot_id, quantity)
        self._check_total(result)

        previous = await self.valuations.get_active(material.id, method, result.batch_lot_id)
        await self.valuations.deactivate(material.id, method, result.batch_lot_id)

        record = MaterialValuation(
            material_id=material.id,
            method=method,
            valuation_date=as_of,
            unit_value=quantize(result.unit_value),
            total_value=result.total_value,
            quantity_basis=quantize(result.quantity_basis),
            currency=material.currency or self.settings.DEFAULT_CURRENCY,
            batch_lot_id=result.batch_lot_id,
            is_active=True,
            previous_unit_value=previous.unit_value if previous is not None else None,
            change_reason=reason,
            variance_amount=quantize(result.variance_amount) if result.variance_amount is not None else None,
        )
        await self.valuations.add(record)
        await self.valuations.flush()
        if commit:
            await self.session.commit()
        logger.info(
            "Valued %s under %s as of %s: unit=%s basis=%s",
            material.code,
            method.value,
            as_of,
            record.unit_value,
            record.quantity_basis,
        )
        return record

    # PUBLIC_INTERFACE
    async def get_current_value(
        self, material_id: UUID, method: ValuationMethod, batch_lot_id: Optional[UUID] = None
    ) -> MaterialValuation:
        """Latest active valuation for (material, method[, lot]) or NotFoundError."""
        record = await self.valuations.get_active(material_id, method, batch_lot_id)
        if record is None:
            raise NotFoundError(
                "No active valuation",
                details={"material_id": str(material_id), "method": method.value},
            )
        return record

    # PUBLIC_INTERFACE
    async def list_valuations(
        self,
        material_id: UUID,
        *,
        method: Optional[ValuationMethod] = None,
        active_only: bool = False,
        limit: int = 100,
        offset: int = 0,
    ) -> List[MaterialValuation]:
        return await self.valuations.list_valuations(
            material_id, method=method, active_only=active_only, limit=limit, offset=offset
        )

    def _check_total(self, result: ValuationResult) -> None:
        expected = float(result.unit_value * result.quantity_basis)
        if not math.isclose(
            float(result.total_value), expected, rel_tol=self.settings.VALUATION_REL_TOLERANCE, abs_tol=1e-6
        ):
            raise ValidationError(
                "Valuation total drifted from unit value x quantity",
                details={"total": str(result.total_value), "expected": expected},
            )

    async def _stock_lots(self, material: Material, as_of: date) -> List[BatchLot]:
        lots = await self.lots.list_material_lots(material.id, statuses=STOCK_STATUSES, received_on_or_before=as_of)
        return [lot for lot in lots if lot.remaining_quantity > 0]

    async def _value_layers(
        self, material: Material, as_of: date, quantity: Optional[Decimal], newest_first: bool
    ) -> ValuationResult:
        lots = await self._stock_lots(material, as_of)
        if not lots:
            raise InsufficientDataError(
                f"No on-hand lots to value {material.code}", details={"material_id": str(material.id)}
            )
        if newest_first:
            lots = list(reversed(lots))

        on_hand = sum((Decimal(lot.remaining_quantity) for lot in lots), ZERO)
        target = quantity if quantity is not None else on_hand
        if target > on_hand:
            raise InsufficientDataError(
                "Requested quantity exceeds on-hand lot history",
                details={"requested": str(target), "on_hand": str(on_hand)},
            )

        needed = target
        cost = ZERO
        for lot in lots:
            if needed <= 0:
                break
            take = min(Decimal(lot.remaining_quantity), needed)
            cost += take * Decimal(lot.unit_cost)
            needed -= take
        return ValuationResult(unit_value=quantize(cost / target), quantity_basis=target)

    async def _value_fifo(
        self, material: Material, as_of: date, batch_lot_id: Optional[UUID], quantity: Optional[Decimal]
    ) -> ValuationResult:
        return await self._value_layers(material, as_of, quantity, newest_first=False)

    async def _value_lifo(
        self, material: Material, as_of: date, batch_lot_id: Optional[UUID], quantity: Optional[Decimal]
    ) -> ValuationResult:
        return await self._value_layers(material, as_of, quantity, newest_first=True)

    async def _value_moving_average(
        self, material: Material, as_of: date, batch_lot_id: Optional[UUID], quantity: Optional[Decimal]
    ) -> ValuationResult:
        """
        Replay the ledger: every receipt moves the average
        newAvg = (oldAvg * oldQty + cost * qty) / (oldQty + qty),
        issues and write-offs only reduce the running quantity.
        """
        history = await self.txns.list_material_history(material.id, up_to=as_of)
        average: Optional[Decimal] = None
        running = ZERO
        for txn in history:
            if txn.txn_type in _AVERAGE_NEUTRAL_TXNS:
                continue
            qty = Decimal(txn.quantity)
            if txn.txn_type == TransactionType.RECEIPT and qty > 0 and txn.unit_cost is not None:
                cost = Decimal(txn.unit_cost)
                if average is None or running <= 0:
                    average = cost
                else:
                    average = (average * running + cost * qty) / (running + qty)
                running += qty
            else:
                running = max(ZERO, running + qty)

        if average is None:
            # Nothing received yet: seed from the standard price.
            return ValuationResult(unit_value=quantize(Decimal(material.price or 0)), quantity_basis=ZERO)
        return ValuationResult(unit_value=quantize(average), quantity_basis=running)

    async def _value_standard_cost(
        self, material: Material, as_of: date, batch_lot_id: Optional[UUID], quantity: Optional[Decimal]
    ) -> ValuationResult:
        price = Decimal(material.price or 0)
        lots = await self._stock_lots(material, as_of)
        on_hand = sum((Decimal(lot.remaining_quantity) for lot in lots), ZERO)
        variance = sum(
            ((Decimal(lot.unit_cost) - price) * Decimal(lot.remaining_quantity) for lot in lots),
            ZERO,
        )
        return ValuationResult(unit_value=quantize(price), quantity_basis=on_hand, variance_amount=variance)

    async def _value_batch_specific(
        self, material: Material, as_of: date, batch_lot_id: Optional[UUID], quantity: Optional[Decimal]
    ) -> ValuationResult:
        if batch_lot_id is None:
            lots = await self._stock_lots(material, as_of)
            if not lots:
                raise InsufficientDataError(
                    f"No lots recorded for {material.code}", details={"material_id": str(material.id)}
                )
            raise ValidationError("batch_lot_id is required for batch-specific valuation")
        lot = await self.lots.get_lot(batch_lot_id)
        if lot is None:
            raise NotFoundError.for_entity("Lot", batch_lot_id)
        if lot.material_id != material.id:
            raise ValidationError(
                "Lot belongs to a different material",
                details={"lot_id": str(lot.id), "material_id": str(material.id)},
            )
        return ValuationResult(
            unit_value=quantize(Decimal(lot.unit_cost)),
            quantity_basis=Decimal(lot.remaining_quantity),
            batch_lot_id=lot.id,
        )
