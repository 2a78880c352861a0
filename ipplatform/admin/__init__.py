"""
IP Platform - Admin API
"""
