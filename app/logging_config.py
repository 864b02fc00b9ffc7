"""Configuration de la journalisation pour VIN Scan.

Handler console sur stdout. Le DBHandler (app/logging_db.py) est ajoute
par create_app hors tests.
"""

import logging
import sys

# Bibliotheques trop bavardes en DEBUG (une ligne par requete HTTP)
_NOISY_LOGGERS = ("httpx", "httpcore", "google_genai", "urllib3")


def setup_logging(log_level: str = "INFO") -> None:
    """Configure le logger racine de l'application."""
    level = getattr(logging, log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)

    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(
            logging.Formatter(
                "[%(asctime)s] %(levelname)s in %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
