"""Inventory system push clients."""

from .glpi import GLPIClient, inventory_url, oauth_token_url, to_glpi_inventory

__all__ = [
    "GLPIClient",
    "inventory_url",
    "oauth_token_url",
    "to_glpi_inventory",
]
