"""
Community package: registry, aggregate counters and health scoring.
"""
