"""
Apps package - FastAPI services for the payment gateway.

This package contains:
- payment_gateway: Identity management, order lifecycle and RBAC diagnostics
"""
