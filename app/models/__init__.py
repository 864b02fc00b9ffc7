"""Modeles ORM SQLAlchemy -- importe tous les modeles pour les enregistrer dans les metadonnees."""

from app.models.blob import ImageBlob  # noqa: F401
from app.models.log import AppLog  # noqa: F401
from app.models.slot import StorageSlot  # noqa: F401
