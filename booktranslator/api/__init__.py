"""
Job control surface: start/status operations and the in-process job registry.
"""
