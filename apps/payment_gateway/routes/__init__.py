"""Route modules for the Payment Gateway.

- health: liveness
- auth: login and current principal
- users: identity management
- orders: order lifecycle, listing and statistics
- dashboard: role-shaped overview
- debug: RBAC diagnostics (disabled unless RBAC_DEBUG)
"""
