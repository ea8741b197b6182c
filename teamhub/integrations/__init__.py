"""Clients for external services: email, OAuth providers, Stripe, Sentry."""
