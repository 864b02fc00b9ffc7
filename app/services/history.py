"""Historique et tableau de bord : filtres et chiffres calcules sur les scans."""

import logging
from collections import Counter
from collections.abc import Sequence
from datetime import date, datetime, time

from app.schemas.inventory import InventoryRecord
from app.schemas.settings import Settings

logger = logging.getLogger(__name__)

TOP_BRANDS = 5
RECENT_SCANS = 5


def _epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def filter_records(
    records: Sequence[InventoryRecord],
    search: str | None = None,
    user_id: str | None = None,
    location_id: str | None = None,
    start: date | None = None,
    end: date | None = None,
) -> list[InventoryRecord]:
    """Recherche VIN/marque/modele, operateur, lieu, et plage de dates incluse."""
    term = (search or "").strip().upper()
    start_ms = _epoch_ms(datetime.combine(start, time.min)) if start else None
    end_ms = _epoch_ms(datetime.combine(end, time.max)) if end else None

    def matches(record: InventoryRecord) -> bool:
        a = record.analysis
        if term and not (
            term in a.vin.upper() or term in a.brand.upper() or term in a.model.upper()
        ):
            return False
        if user_id and record.user_id != user_id:
            return False
        if location_id and record.location_id != location_id:
            return False
        if start_ms is not None and record.timestamp < start_ms:
            return False
        if end_ms is not None and record.timestamp > end_ms:
            return False
        return True

    return [r for r in records if matches(r)]


def dashboard_figures(
    records: Sequence[InventoryRecord],
    settings: Settings,
    now: datetime | None = None,
) -> dict:
    """Scans du jour et du mois, objectif mensuel, marques les plus vues."""
    now = now or datetime.now()
    start_of_day = _epoch_ms(datetime.combine(now.date(), time.min))
    start_of_month = _epoch_ms(datetime.combine(now.date().replace(day=1), time.min))

    today = sum(1 for r in records if r.timestamp >= start_of_day)
    month = sum(1 for r in records if r.timestamp >= start_of_month)
    target = settings.monthly_target or 100
    percent = round(month / target * 100)

    brands = Counter(r.analysis.brand for r in records)
    return {
        "total": len(records),
        "scansToday": today,
        "scansThisMonth": month,
        "monthlyTarget": target,
        "monthlyGoalPercent": percent,
        "targetReached": percent >= 100,
        "topBrands": [
            {"name": name, "count": count} for name, count in brands.most_common(TOP_BRANDS)
        ],
        "recent": [r.to_json() for r in sorted(records, key=lambda r: -r.timestamp)[:RECENT_SCANS]],
    }
