"""
IP Platform - Analyst self-service API
"""
