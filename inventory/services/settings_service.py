from decimal import Decimal
from typing import Dict, Any

from django.db import transaction

from inventory.models import InventorySettings
from inventory.services.base_service import (
    BaseService, success_response, ValidationError, to_decimal, to_int,
)


class InventorySettingsService(BaseService):
    model = InventorySettings

    @classmethod
    def load(cls) -> InventorySettings:
        return InventorySettings.load()

    @classmethod
    def get_all(cls) -> Dict[str, Any]:
        settings = cls.load()
        return {
            "defect_rate_fail_threshold": str(settings.defect_rate_fail_threshold),
            "currency_places": settings.currency_places,
        }

    @classmethod
    @transaction.atomic
    def update(cls, **kwargs) -> Dict[str, Any]:
        settings = cls.load()
        update_fields = ["updated_at"]

        if "defect_rate_fail_threshold" in kwargs:
            threshold = to_decimal(kwargs["defect_rate_fail_threshold"], None)
            if threshold is None or threshold.is_nan() or not Decimal("0") <= threshold <= Decimal("1"):
                raise ValidationError("Threshold must be a ratio between 0 and 1", "defect_rate_fail_threshold")
            settings.defect_rate_fail_threshold = threshold
            update_fields.append("defect_rate_fail_threshold")

        if "currency_places" in kwargs:
            places = to_int(kwargs["currency_places"])
            if places is None or not 0 <= places <= 4:
                raise ValidationError("Currency places must be between 0 and 4", "currency_places")
            settings.currency_places = places
            update_fields.append("currency_places")

        settings.save(update_fields=update_fields)

        return success_response({"settings": cls.get_all()}, "Settings updated")
