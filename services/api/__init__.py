"""
HTTP API.

Endpoints (all under /api):
    GET /health
    GET /farms
    GET /readings?farm_id=&limit=
    GET /alerts?farm_id=&limit=
    GET /thresholds/latest?farm_id=
    GET /metrics/latest?farm_id=
    GET /events?farm_id=
    POST /import/csv
    POST /import/open-meteo
"""
