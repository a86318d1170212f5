"""
Routes package for the airspace intelligence API.

- analytics: intelligence / traffic / safety batches, anomaly DNA, predictions, cache
"""

# Note: Routers are imported directly in api.py to avoid circular imports

__all__ = [
    'analytics',
]
