"""
Syntropy manager: node bootstrap and environment validation service.
"""

__version__ = "1.0.0"
