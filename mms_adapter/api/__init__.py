"""
Legacy API surface: request handlers, option parsing, sessions and the
FastAPI application (api.server).
"""
