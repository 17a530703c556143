"""Inbound webhook ingestion for Shopify, BigCommerce and Clover.

Each delivery is signature-verified, scope-filtered, deduplicated,
resolved to a tenant, and then either deletes ledger rows or reconciles
fresh item state into the ledger.
"""
