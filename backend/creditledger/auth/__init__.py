"""
Authentication helpers (Firebase ID tokens).
"""
