# sq_core/__init__.py
"""SlotQuorum: poll several ledger nodes and find the slot and block they agree on."""

__version__ = "0.1.0"
