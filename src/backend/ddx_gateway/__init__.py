"""
DDx Gateway: a uniform diagnose API over interchangeable diagnostic
reasoning providers (local rules, vendor CDS APIs, generative models).

Packages:
  - providers: the provider contract, built-in providers and the registry
  - services: retry/backoff, response normalization, batch dispatch
  - api: FastAPI routers
  - models: pydantic request/response schemas
"""

__version__ = "0.1.0"
