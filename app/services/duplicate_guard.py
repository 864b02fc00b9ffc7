"""Garde anti-doublon : un VIN (ou marque+modele) deja scanne recemment ?

Un scan avec VIN designe le meme vehicule qu'un scan anterieur de meme VIN.
Un scan sans VIN se compare par marque et modele a tous les scans
anterieurs, qu'ils portent un VIN ou non (hors valeurs sentinelles).
Ils sont doublons si le scan anterieur date de moins de ``window_hours`` ;
un ecart egal a la fenetre n'est pas un doublon.
"""

import logging
from collections.abc import Iterable

from app.schemas.inventory import SENTINELS, InventoryRecord, VehicleAnalysis

logger = logging.getLogger(__name__)

HOUR_MS = 3_600_000


def _brand_model(analysis: VehicleAnalysis) -> tuple[str, str] | None:
    brand = analysis.brand.strip().upper()
    model = analysis.model.strip().upper()
    if brand in SENTINELS or model in SENTINELS:
        return None
    return brand, model


def same_vehicle(candidate: VehicleAnalysis, prior: VehicleAnalysis) -> bool:
    """Le candidat designe-t-il le vehicule d'un scan anterieur ?"""
    vin = candidate.vin.strip().upper()
    if vin:
        return vin == prior.vin.strip().upper()
    key = _brand_model(candidate)
    return key is not None and key == _brand_model(prior)


def within_window(ts_a: int, ts_b: int, window_hours: float) -> bool:
    return abs(ts_a - ts_b) < window_hours * HOUR_MS


def is_duplicate_pair(a: InventoryRecord, b: InventoryRecord, window_hours: float) -> bool:
    earlier, later = sorted((a, b), key=lambda r: r.timestamp)
    return same_vehicle(later.analysis, earlier.analysis) and within_window(
        a.timestamp, b.timestamp, window_hours
    )


def find_duplicates(
    candidate: VehicleAnalysis,
    records: Iterable[InventoryRecord],
    window_hours: float,
    now_ms: int,
) -> list[InventoryRecord]:
    """Scans anterieurs du meme vehicule dans la fenetre precedant ``now_ms``."""
    if window_hours <= 0:
        return []
    window_ms = window_hours * HOUR_MS
    # Un horodatage posterieur a now (horloge decalee, restauration) n'est pas anterieur
    hits = [
        r
        for r in records
        if 0 <= now_ms - r.timestamp < window_ms and same_vehicle(candidate, r.analysis)
    ]
    if hits:
        logger.info(
            "Doublon potentiel %s %s vin=%s: %d scan(s) dans les %sh",
            candidate.brand,
            candidate.model,
            candidate.vin or "-",
            len(hits),
            window_hours,
        )
    return hits


def flag_duplicates(records: Iterable[InventoryRecord], window_hours: float) -> set[str]:
    """Ids des scans precedes d'un scan du meme vehicule dans la fenetre."""
    if window_hours <= 0:
        return set()
    ordered = sorted(records, key=lambda r: r.timestamp)
    window_ms = window_hours * HOUR_MS

    flagged: set[str] = set()
    for i, current in enumerate(ordered):
        for previous in reversed(ordered[:i]):
            if current.timestamp - previous.timestamp >= window_ms:
                break
            if same_vehicle(current.analysis, previous.analysis):
                flagged.add(current.id)
                break
    return flagged
