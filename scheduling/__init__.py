"""Kursplanung: Expansion, Konfliktprüfung, Materialisierung und Service."""
