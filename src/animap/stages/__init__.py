"""Pipeline enrichment stages."""
