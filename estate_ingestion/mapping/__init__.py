"""Header resolution and cell coercion."""
