"""Storefront cart core."""
