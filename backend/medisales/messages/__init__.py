"""Direct messages: DuckDB store and history endpoints."""
