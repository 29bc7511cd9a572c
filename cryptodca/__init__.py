"""
Backend package for the crypto DCA tracker API.

This package provides a FastAPI application that authenticates users and
stores their profile, watch pairs and buy/sell transactions behind small
storage abstractions so the service can run against Postgres and Redis in
production or entirely in memory for local development and tests.
"""
