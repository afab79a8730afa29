"""Checkout location picker: geocoding proxy and map address resolution."""
