"""Export CSV de l'inventaire (compatible Excel FR).

Point-virgule comme separateur, UTF-8 avec BOM, chaque champ entre
guillemets, guillemets internes doubles.
"""

import csv
import io
import logging
from collections.abc import Iterable
from datetime import date, datetime

from app.schemas.inventory import InventoryRecord

logger = logging.getLogger(__name__)

BOM = "\ufeff"

HEADERS = (
    "Date Scan",
    "VIN",
    "Marque",
    "Modèle",
    "Année Fab.",
    "Immatriculation",
    "Carburant",
    "Motorisation",
    "Couleur",
    "Valeur Min (MAD)",
    "Valeur Max (MAD)",
    "Notes",
    "Utilisateur",
    "Lieu",
)


def _format_value(value: float | None) -> str:
    if not value:
        return ""
    return str(int(value)) if float(value).is_integer() else str(value)


def _format_timestamp(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%d/%m/%Y %H:%M:%S")


def record_row(record: InventoryRecord) -> list[str]:
    a = record.analysis
    return [
        _format_timestamp(record.timestamp),
        a.vin or "N/A",
        a.brand or "Inconnu",
        a.model or "Inconnu",
        a.year_of_manufacture,
        a.license_plate,
        a.fuel_type,
        a.motorization,
        a.color,
        _format_value(a.market_value_min),
        _format_value(a.market_value_max),
        a.inventory_notes,
        record.user_name,
        record.location,
    ]


def export_csv(records: Iterable[InventoryRecord]) -> str:
    """Contenu CSV complet, BOM en tete."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=";", quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(HEADERS)
    count = 0
    for record in records:
        writer.writerow(record_row(record))
        count += 1
    logger.info("Export CSV: %d scan(s)", count)
    return BOM + buffer.getvalue()


def export_filename(prefix: str = "inventaire_vehicules", today: date | None = None) -> str:
    return f"{prefix}_{(today or date.today()).isoformat()}.csv"
