"""Carrier fee lookup over the zone and city rate tables."""

import logging
import unicodedata
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from carrier_ledger.core.config import settings
from carrier_ledger.models.shared import to_money
from carrier_ledger.repositories.carrier_repository import CarrierRepository

logger = logging.getLogger(__name__)

FALLBACK_ZONE_NAMES = ("default", "otros", "interior", "general")


def normalize_location(value: str | None) -> str:
    """Lowercase, trim and strip accents so 'Asunción ' matches 'asuncion'."""
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFD", value.strip().lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def failed_attempt_percent(carrier: Any) -> int:
    """Percentage of the delivery fee charged for a failed attempt."""
    percent = getattr(carrier, "failed_attempt_fee_percent", None)
    if percent is None:
        return settings.DEFAULT_FAILED_ATTEMPT_FEE_PERCENT
    return int(percent)


def calculate_failed_attempt_fee(carrier_fee: Any, percent: int) -> Decimal:
    """carrier_fee * percent / 100, rounded half-up to the cent."""
    return to_money(Decimal(str(carrier_fee or 0)) * Decimal(percent) / Decimal(100))


class RateResolver:
    """Resolves the delivery fee a carrier charges for an order.

    Lookup order: city coverage rate, zone rate by the order's zone, zone
    rate by the city name, the carrier's fallback rate, then 0. Rate tables
    are loaded once per carrier and cached on the instance.
    """

    def __init__(self, db: Session):
        self.db = db
        self.carrier_repo = CarrierRepository(db)
        self._zones: dict[UUID, dict[str, Decimal]] = {}
        self._coverage: dict[UUID, dict[str, Decimal]] = {}

    def _load(self, carrier_id: UUID) -> None:
        if carrier_id in self._zones:
            return
        self._zones[carrier_id] = {
            normalize_location(z.zone_name): to_money(z.rate)  # type: ignore[arg-type]
            for z in self.carrier_repo.get_active_zones(carrier_id)
        }
        self._coverage[carrier_id] = {
            normalize_location(c.city): to_money(c.rate)  # type: ignore[arg-type]
            for c in self.carrier_repo.get_active_coverage(carrier_id)
        }

    def has_rates(self, carrier_id: UUID) -> bool:
        self._load(carrier_id)
        return bool(self._zones[carrier_id] or self._coverage[carrier_id])

    def fallback_rate(self, carrier_id: UUID) -> Decimal | None:
        """First named default zone, else the lowest zone rate; None without zones."""
        self._load(carrier_id)
        zones = self._zones[carrier_id]
        for name in FALLBACK_ZONE_NAMES:
            if name in zones:
                return zones[name]
        if zones:
            return min(zones.values())
        return None

    def resolve_fee(self, carrier_id: UUID, city: str | None, zone: str | None) -> Decimal:
        """Delivery fee for one order; 0 when nothing matches."""
        self._load(carrier_id)
        zones = self._zones[carrier_id]
        coverage = self._coverage[carrier_id]
        city_key = normalize_location(city)
        zone_key = normalize_location(zone)

        if city_key and city_key in coverage:
            return coverage[city_key]
        if zone_key and zone_key in zones:
            return zones[zone_key]
        if city_key and city_key in zones:
            return zones[city_key]

        fallback = self.fallback_rate(carrier_id)
        if fallback is not None:
            return fallback

        logger.warning(
            "No rate for carrier %s (city=%r, zone=%r); using 0", carrier_id, city, zone
        )
        return Decimal("0.00")
