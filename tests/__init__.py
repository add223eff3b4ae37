"""
Tests for the camp registration API.

Service tests live at the top level, one module per service area
(registrations, registration admin, payments, notifications, ...).
tests/api/ drives the FastAPI app over HTTP.
"""
