"""
Bakery Trace - production traceability for bakery recipes.

Freezes recipe snapshots when production starts, tracks production runs
through their lifecycle, and encodes/decodes the 12-character lot codes
printed on finished batches.
"""

__version__ = "0.1.0"
