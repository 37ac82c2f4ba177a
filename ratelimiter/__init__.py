"""Request rate limiting for FastAPI with in-memory and Redis counter stores."""
