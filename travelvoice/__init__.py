"""
Travel Voice API - multi-tenant voice agent backend.
"""

__version__ = "1.0.0"
