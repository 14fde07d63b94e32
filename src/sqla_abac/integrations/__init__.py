"""Web framework integrations (FastAPI, Flask)."""
