"""
teamhub - multi-tenant SaaS backend.

Accounts (local and OAuth), teams with role-based access, and subscription
billing through a payment processor.
"""

__version__ = "0.1.0"
