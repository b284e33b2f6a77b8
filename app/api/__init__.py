"""
API module - FastAPI routers and endpoint definitions.

- auth_routes: registration, email verification (OTP), login
- resume_routes: resume upload and version history
- admin_routes: account management and platform stats

Usage:
    from app.api.routes import api_router
    app.include_router(api_router, prefix="/api")
"""
