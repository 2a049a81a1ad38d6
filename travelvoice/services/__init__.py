"""
Business logic shared by the API endpoints.
"""
