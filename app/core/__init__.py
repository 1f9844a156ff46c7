"""Settings, database handles and FastAPI dependencies."""
