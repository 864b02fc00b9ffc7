"""Couches de persistance locales : slots JSON et photos."""
