"""
Component tests for the storefront API

Component tests drive the FastAPI routes through the access gate, services
and stores together, without mocking internal layers.
"""
