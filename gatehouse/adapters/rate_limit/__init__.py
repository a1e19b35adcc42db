"""Rate limiting adapters.

Counting strategies live behind ``AbstractRateLimiter`` so the guards never
depend on how a window is stored.
"""
