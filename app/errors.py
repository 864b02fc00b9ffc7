"""Hierarchie d'exceptions VIN Scan.

Regles :
  - Ne jamais utiliser ``except Exception`` nu. Toujours attraper un type specifique.
  - Les erreurs du raffinement (2e passe) sont absorbees par le pipeline,
    celles de la passe critique remontent a l'operateur sous forme classee.
"""


class VinScanError(Exception):
    """Exception de base pour toutes les erreurs VIN Scan."""


class ExtractionError(VinScanError):
    """Le service d'extraction a echoue ou a renvoye une reponse inexploitable."""


class AnalysisError(VinScanError):
    """Echec d'une tentative de scan, classe pour l'operateur.

    ``code`` vaut INVALID_API_KEY, RATE_LIMITED ou ANALYSIS_FAILED.
    """

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code


class ValidationError(VinScanError):
    """Les donnees d'entree n'ont pas passe la validation."""


class AuthenticationError(VinScanError):
    """Identifiants refuses (message generique, sans distinction)."""


class PermissionDeniedError(VinScanError):
    """L'operateur connecte n'a pas la capacite requise."""


class ProtectedOperatorError(VinScanError):
    """Tentative de suppression de l'administrateur initial."""


class NotFoundError(VinScanError):
    """Ressource introuvable (scan, operateur, lieu)."""


class DuplicateScanError(VinScanError):
    """Scan refuse car deja inventorie dans la fenetre de doublon."""

    def __init__(self, message: str, duplicates: list | None = None):
        super().__init__(message)
        self.duplicates = duplicates or []
