"""ledgersync: multi-source inventory reconciliation and webhook ingestion."""

__version__ = "0.1.0"
