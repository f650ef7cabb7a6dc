"""
estate_ingestion -- Tabular imports of property-management data.

Parses CSV, JSON and XLSX uploads, maps columns onto per-category schemas,
validates and transforms rows, and commits them through the kernel's lock
gate and audit journal.

Architecture:
    estate_ingestion/ is a top-level package. Nothing in estate_kernel/
    imports from ingestion.
"""
