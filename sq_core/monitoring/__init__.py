"""
SlotQuorum metrics.
"""
