"""Availability package - broadband coverage by CEP or coordinates.

Key modules:
    - repository: Coverage area persistence (CoverageStore)
    - resolver: Point-in-region matching against stored areas
    - ingestion: KML/KMZ upload to one coverage area per provider
    - provider_labels: Provider detection from feature labels and file names
    - query_service: Public lookup with reasons, ranking and caching
    - query_cache: Versioned Redis cache of lookup results
    - api: FastAPI routes

Usage:
    from availability.dependencies import build_coverage_services
    services = build_coverage_services(JsonCache())
    result = await services.query_service.by_postal_code("01310-100")
"""
