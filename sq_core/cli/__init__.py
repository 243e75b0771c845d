"""
SlotQuorum command line interface.
"""
