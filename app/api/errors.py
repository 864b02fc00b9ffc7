"""Gestionnaires d'erreurs API -- retournent du JSON, n'exposent jamais les stack traces."""

import logging

from app.api import api_bp
from app.errors import (
    AnalysisError,
    AuthenticationError,
    DuplicateScanError,
    ExtractionError,
    NotFoundError,
    PermissionDeniedError,
    ProtectedOperatorError,
    ValidationError,
    VinScanError,
)
from app.schemas.common import fail

logger = logging.getLogger(__name__)

_ANALYSIS_STATUS = {"INVALID_API_KEY": 502, "RATE_LIMITED": 429, "ANALYSIS_FAILED": 502}


@api_bp.errorhandler(ValidationError)
def handle_validation_error(exc):
    logger.warning("Validation error: %s", exc)
    return fail("VALIDATION_ERROR", str(exc), 400)


@api_bp.errorhandler(AuthenticationError)
def handle_authentication_error(exc):
    return fail("LOGIN_REJECTED", str(exc), 401)


@api_bp.errorhandler(PermissionDeniedError)
def handle_permission_denied(exc):
    logger.info("Permission denied: %s", exc)
    return fail("FORBIDDEN", str(exc), 403)


@api_bp.errorhandler(ProtectedOperatorError)
def handle_protected_operator(exc):
    return fail("PROTECTED_OPERATOR", str(exc), 403)


@api_bp.errorhandler(NotFoundError)
def handle_missing(exc):
    return fail("NOT_FOUND", str(exc), 404)


@api_bp.errorhandler(DuplicateScanError)
def handle_duplicate(exc):
    return fail(
        "DUPLICATE_SCAN",
        str(exc),
        409,
        data={"duplicates": [r.to_json() for r in exc.duplicates]},
    )


@api_bp.errorhandler(AnalysisError)
def handle_analysis_error(exc):
    return fail(exc.code, str(exc), _ANALYSIS_STATUS.get(exc.code, 502))


@api_bp.errorhandler(ExtractionError)
def handle_extraction_error(exc):
    logger.warning("Extraction error: %s", exc)
    return fail("ANALYSIS_FAILED", "L'analyse IA a echoue. Verifiez la connexion ou reessayez.", 502)


@api_bp.errorhandler(VinScanError)
def handle_vinscan_error(exc):
    logger.error("VIN Scan error: %s", exc)
    return fail("INTERNAL_ERROR", "Une erreur est survenue. Reessayez.", 500)


@api_bp.errorhandler(404)
def handle_not_found(exc):
    return fail("NOT_FOUND", "Cette route n'existe pas.", 404)


@api_bp.errorhandler(500)
def handle_internal_error(exc):
    logger.error("Unhandled error: %s", exc)
    return fail(
        "INTERNAL_ERROR",
        "Erreur inattendue. En dernier recours, reinitialisez les donnees locales (POST /api/reset).",
        500,
        data={"resetAvailable": True},
    )
