"""Shared helpers for :mod:`fx_twbank`."""
