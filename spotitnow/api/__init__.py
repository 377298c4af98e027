"""
API Routers Package
"""
