"""
Service entry points for the threshold lab.

Services:
    monitor: Live reading loop and periodic dynamic threshold recompute
    api: HTTP API over the store, with import endpoints
"""
