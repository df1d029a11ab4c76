"""Catalog Sort: sales-driven ordering of product variants, option values and images."""
