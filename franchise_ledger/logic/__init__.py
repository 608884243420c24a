# franchise_ledger/logic/__init__.py
"""
Core logic: identifiers, sheet schemas, header mapping, reads, matching,
settlement and formula-preserving writes.
"""
