"""
IP Platform - Authentication and Account Core
"""
