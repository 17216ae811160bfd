"""
FastAPI REST API for the back office admin UI.
"""
