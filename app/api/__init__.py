"""
API Module

This module contains the API route handlers.
"""
