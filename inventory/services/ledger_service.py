import logging
from collections import defaultdict
from typing import Dict, Any, Iterable, List, Optional

from django.db import DatabaseError, transaction
from django.db.models import Q

from inventory.choices import Counter, UnitType
from inventory.domain import Adjustment, StockSnapshot
from inventory.models import StockUnit, StockMovement
from inventory.services.base_service import (
    BaseService, success_response, paginate_queryset, isoformat, to_decimal, to_int,
    ValidationError, NotFoundError, BusinessRuleError, LedgerUnavailableError,
)
from inventory.services.ledger import Ledger, plan_adjustments
from inventory.services.results import AdjustResult

logger = logging.getLogger(__name__)


def to_snapshot(unit: StockUnit) -> StockSnapshot:
    return StockSnapshot(
        stock_unit_id=unit.id,
        unit_type=unit.unit_type,
        counters=unit.counters(),
        name=unit.name,
    )


class DatabaseLedger(Ledger):
    """
    Ledger over the StockUnit table.

    Commits lock the touched rows with SELECT ... FOR UPDATE in primary key
    order and write one StockMovement per changed counter. When called inside
    an outer transaction the commit becomes a savepoint of it.
    """

    def get(self, stock_unit_id) -> Optional[StockSnapshot]:
        try:
            unit = StockUnit.objects.filter(id=stock_unit_id, is_active=True).first()
        except (ValueError, TypeError):
            return None
        except DatabaseError as e:
            logger.error(f"Stock read failed for unit {stock_unit_id}: {e}")
            raise LedgerUnavailableError("Stock store is unavailable", {"stock_unit_id": stock_unit_id}) from e
        return to_snapshot(unit) if unit else None

    def apply(self,
              adjustments: Iterable[Adjustment],
              reference: str = "",
              actor_id: Optional[int] = None,
              notes: str = "") -> AdjustResult:
        adjustments = list(adjustments)
        unit_ids = sorted({adj.stock_unit_id for adj in adjustments})

        try:
            with transaction.atomic():
                # Units deactivated since validation count as missing
                locked = StockUnit.objects.select_for_update().filter(id__in=unit_ids, is_active=True)
                units = {unit.id: unit for unit in locked.order_by("pk")}
                missing = [uid for uid in unit_ids if uid not in units]
                if missing:
                    raise NotFoundError("StockUnit", ", ".join(str(uid) for uid in missing))

                current = {}
                for adj in adjustments:
                    counter = str(adj.counter)
                    unit = units[adj.stock_unit_id]
                    if counter not in unit.counter_names():
                        raise ValidationError(f"{unit.code} has no counter {counter}", "counter")
                    current[(unit.id, counter)] = getattr(unit, counter)

                targets, deficit = plan_adjustments(adjustments, current)
                if deficit:
                    logger.info(
                        f"Rejected commit {reference or '-'}: unit {deficit.unit} "
                        f"{deficit.counter} needs {deficit.requested}, has {deficit.available}"
                    )
                    return AdjustResult(error=deficit)

                changed = defaultdict(list)
                movements = []
                for (uid, counter), value in targets.items():
                    unit = units[uid]
                    movements.append(StockMovement(
                        stock_unit=unit,
                        counter=counter,
                        quantity_before=getattr(unit, counter),
                        quantity_after=value,
                        reference=reference,
                        user_id=actor_id,
                        notes=notes,
                    ))
                    setattr(unit, counter, value)
                    changed[uid].append(counter)

                for uid, fields in changed.items():
                    units[uid].save(update_fields=fields + ["updated_at"])
                StockMovement.objects.bulk_create(movements)

        except DatabaseError as e:
            logger.exception(f"Stock commit {reference or '-'} failed")
            raise LedgerUnavailableError("Stock store is unavailable", {"reference": reference}) from e

        logger.info(f"Committed {len(movements)} stock movements for {reference or '-'}")
        return AdjustResult(new_quantities=targets)


class StockUnitService(BaseService):
    model = StockUnit

    COUNTER_FIELDS = [c.value for c in Counter]
    EDITABLE_FIELDS = {
        "name", "color", "supplier", "location", "cost_price", "selling_price",
        "carton_quantity", "items_per_carton", "notes", "is_active",
    }

    # ==================== SERIALIZATION ====================

    @classmethod
    def serialize(cls, unit: StockUnit) -> Dict[str, Any]:
        data = {
            "id": unit.id,
            "uuid": str(unit.uuid),
            "code": unit.code,
            "name": unit.name,
            "unit_type": unit.unit_type,
            "unit_type_display": unit.get_unit_type_display(),
            "color": unit.color,
            "supplier": unit.supplier,
            "location": unit.location,
            "cost_price": str(unit.cost_price),
            "selling_price": str(unit.selling_price),
            "carton_quantity": unit.carton_quantity,
            "items_per_carton": unit.items_per_carton,
            "notes": unit.notes,
            "is_active": unit.is_active,
            "created_at": isoformat(unit.created_at),
            "updated_at": isoformat(unit.updated_at),
        }
        data.update(unit.counters())
        return data

    @classmethod
    def serialize_movement(cls, movement: StockMovement) -> Dict[str, Any]:
        return {
            "id": movement.id,
            "stock_unit_id": movement.stock_unit_id,
            "counter": movement.counter,
            "quantity_before": movement.quantity_before,
            "quantity_after": movement.quantity_after,
            "change": movement.change,
            "reference": movement.reference,
            "user_id": movement.user_id,
            "notes": movement.notes,
            "created_at": isoformat(movement.created_at),
        }

    # ==================== LIST & GET ====================

    @classmethod
    def list(cls,
             page: int = 1,
             per_page: int = 20,
             unit_type: str = None,
             search: str = None,
             active_only: bool = True) -> Dict[str, Any]:
        queryset = cls.model.objects.all()

        if active_only:
            queryset = queryset.filter(is_active=True)

        if unit_type:
            queryset = queryset.filter(unit_type=unit_type)

        if search:
            queryset = queryset.filter(
                Q(name__icontains=search) | Q(code__icontains=search) | Q(color__icontains=search)
            )

        units, pagination = paginate_queryset(queryset.order_by("unit_type", "name"), page, per_page)

        return success_response({
            "stock_units": [cls.serialize(u) for u in units],
            "pagination": pagination,
            "unit_types": [{"value": c[0], "label": c[1]} for c in UnitType.choices],
        })

    @classmethod
    def get(cls, stock_unit_id: int) -> Dict[str, Any]:
        unit = cls.get_or_404(stock_unit_id)
        movements = unit.movements.all()[:20]
        return success_response({
            "stock_unit": cls.serialize(unit),
            "recent_movements": [cls.serialize_movement(m) for m in movements],
        })

    # ==================== CREATE & UPDATE ====================

    @classmethod
    @transaction.atomic
    def create(cls,
               code: str,
               name: str,
               unit_type: str = UnitType.INVENTORY,
               created_by_id: int = None,
               **kwargs) -> Dict[str, Any]:
        code = (code or "").strip()
        name = (name or "").strip()

        if not code:
            raise ValidationError("Code is required", "code")
        if not name:
            raise ValidationError("Name is required", "name")
        if unit_type not in UnitType.values:
            raise ValidationError(f"Invalid unit type. Valid: {UnitType.values}", "unit_type")
        if cls.model.objects.filter(code=code).exists():
            raise ValidationError(f"Code {code} is already in use", "code")

        counters = {}
        allowed = cls.COUNTER_FIELDS if unit_type == UnitType.ACCESSORY else [Counter.AVAILABLE.value]
        for field in cls.COUNTER_FIELDS:
            if field not in kwargs:
                continue
            value = to_int(kwargs.pop(field))
            if value is None or value < 0:
                raise ValidationError(f"{field} must be a non-negative integer", field)
            if value and field not in allowed:
                raise ValidationError(f"{field} only applies to accessories", field)
            counters[field] = value

        unit = cls.model(code=code, name=name, unit_type=unit_type, created_by_id=created_by_id)
        cls._assign(unit, kwargs)
        unit.save()

        # Opening balances go through the ledger so they show in the history
        opening = [Adjustment(unit.id, value, field) for field, value in counters.items() if value]
        if opening:
            DatabaseLedger().apply(opening, reference=code, actor_id=created_by_id, notes="Opening balance")
            unit.refresh_from_db()

        logger.info(f"Created stock unit {code}")
        return success_response({
            "id": unit.id,
            "stock_unit": cls.serialize(unit),
        }, f"Stock unit {code} created")

    @classmethod
    @transaction.atomic
    def update(cls, stock_unit_id: int, **kwargs) -> Dict[str, Any]:
        unit = cls.get_or_404(stock_unit_id)

        touched = [f for f in cls.COUNTER_FIELDS if f in kwargs]
        if touched:
            raise BusinessRuleError(
                "Quantities change only through documents and batch operations",
                "counters_read_only",
            )

        if "name" in kwargs and not (kwargs["name"] or "").strip():
            raise ValidationError("Name is required", "name")

        update_fields = cls._assign(unit, kwargs) + ["updated_at"]
        unit.save(update_fields=update_fields)

        return success_response({"stock_unit": cls.serialize(unit)}, "Stock unit updated")

    @classmethod
    def _assign(cls, unit: StockUnit, values: Dict[str, Any]) -> List[str]:
        assigned = []
        for field, value in values.items():
            if field not in cls.EDITABLE_FIELDS:
                continue
            if field in ("cost_price", "selling_price"):
                value = to_decimal(value)
                if value < 0:
                    raise ValidationError(f"{field} cannot be negative", field)
            elif field in ("carton_quantity", "items_per_carton"):
                value = to_int(value, 0)
                if value < 0:
                    raise ValidationError(f"{field} cannot be negative", field)
            elif field == "is_active":
                value = bool(value)
            else:
                value = (value or "").strip() if isinstance(value, str) or value is None else value
            setattr(unit, field, value)
            assigned.append(field)
        return assigned

    @classmethod
    def movements(cls, stock_unit_id: int, page: int = 1, per_page: int = 50) -> Dict[str, Any]:
        unit = cls.get_or_404(stock_unit_id)
        items, pagination = paginate_queryset(unit.movements.all(), page, per_page)
        return success_response({
            "movements": [cls.serialize_movement(m) for m in items],
            "pagination": pagination,
        })
