"""
Participant Analytics Backend Package.

FastAPI service layer for incubation participant performance analytics and
peer benchmarking. Normalizes revenue, headcount, intervention and compliance
records from independently shaped sources into drill-down series and peer
cohort overlays.

Subpackages:
    - api: FastAPI route handlers
    - core: Configuration, database pool, record store and dependencies
    - models: Pydantic schemas and enums
    - services: Analytics engine (normalization, merging, aggregation, cohorts)
    - sql: Parameterized document store queries
"""

__version__ = "1.0.0"
