"""Core utilities and shared infrastructure.

- config: Configuration loading and validation
- constants: Named constants (instance filters, default factors)
- exceptions: Custom exception hierarchy
"""
