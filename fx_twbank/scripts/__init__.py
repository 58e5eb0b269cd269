"""Command-line entry points for :mod:`fx_twbank`."""
