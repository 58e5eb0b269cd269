"""Acquisition pipeline stages: relays, localization, extraction, normalization."""
