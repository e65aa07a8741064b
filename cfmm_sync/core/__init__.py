"""
Core runtime: sync orchestration and checkpoint storage.
"""
