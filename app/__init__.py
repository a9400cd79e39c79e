"""
Freshdesk closed-ticket mirror.
"""

__version__ = "1.0.0"
