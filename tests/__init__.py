"""Test suite for the tenant identity service."""
