"""
Utility modules: structured logging and Prometheus metrics.
"""
