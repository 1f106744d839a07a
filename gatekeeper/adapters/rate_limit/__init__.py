"""Rate limiting adapters.

This package provides a small abstraction layer so the limiter algorithm
stays independent of where window records live (in-process cache or Redis).
"""
