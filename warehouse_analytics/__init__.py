"""
Warehouse Analytics Platform

Ingests warehouse inbound, outbound and inventory spreadsheets, joins them
against the reference catalog and serves CBM/quantity reports.
"""

__version__ = "1.0.0"
