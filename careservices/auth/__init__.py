"""
Authentication service for the care coordination back office.

This module provides authentication and authorization services:
- Login, logout and password changes
- Password generation, hashing and strength rules
- JWT token handling
- Role and worker type access control
"""
