"""
Tests Package - influxwire
==========================

Structure:
- unit/: Unit tests for values, codecs, builders, decoders and sinks
- integration/: HTTP client tests against an httpx mock transport
- conftest.py: Shared fixtures and test configuration
"""
