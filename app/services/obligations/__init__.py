"""Obligation catalog, deadline calculation and instance lifecycle."""
