"""
Schemas module - Request/Response schemas for API endpoints.

Difference from stored documents:
- Documents: plain dicts in MongoDB (shape documented in services/resume_content.py)
- Schemas: API contract (what client sends/receives)
"""
