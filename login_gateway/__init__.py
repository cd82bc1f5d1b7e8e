"""
Login Gateway

Google sign-in that issues stateless, one-hour session JWTs.
"""

__version__ = "1.0.0"
