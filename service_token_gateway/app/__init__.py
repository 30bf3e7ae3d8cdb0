"""
Token Gateway service package.

The gateway fronts token lookups, enforcing:
- Rate limiting: fixed-window budget per client address on every route
- Authentication: shared-secret ``authorization`` header on ``/api``
- Upstream access: price and metadata lookups against a Moralis server

Structure:
- app.main: FastAPI app, routes, and middleware wiring.
- app.adapters: HTTP client for the Moralis server.
- app.token_data: Token lookup aggregation and response shapes.
- app.ratelimit: Fixed-window limiters and middleware.
- app.domain: Cross-cutting helpers (shared-secret auth gate).
"""
