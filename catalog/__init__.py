"""Catalog domain helpers: models, queries, analytics and admin auth."""
