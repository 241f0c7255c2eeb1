"""HTTP surface: thin FastAPI routes and their Pydantic schemas."""
