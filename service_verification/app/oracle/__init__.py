"""
Compute oracle package for the Verification Service.
"""

from .verifier import DemoVerificationOracle, VerificationOracle

__all__ = ["DemoVerificationOracle", "VerificationOracle"]
