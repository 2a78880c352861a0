"""
IP Platform - Gateway

Request authentication and security middleware.
"""
