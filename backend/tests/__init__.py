"""
Pytest test suite for the KrostyShop backend.

Test categories:
- Unit tests: service layer against an in-memory SQLite DB, providers mocked
- API tests: full FastAPI app through httpx ASGITransport
"""
