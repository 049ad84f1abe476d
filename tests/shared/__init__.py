"""Shared testing utilities for the channel storage gateway.

This package contains reusable testing components:
- fake_gcs.py: in-memory stand-in for the google-cloud-storage client surface
- keys.py: service-account key material with a freshly generated RSA key
"""
