"""HTTP API. The application factory lives in teamhub.api.app."""
