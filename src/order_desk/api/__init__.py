"""HTTP API (FastAPI) for the order desk."""
