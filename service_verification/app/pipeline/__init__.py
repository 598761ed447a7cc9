"""
Verification pipeline package.
"""

from .orchestrator import VerificationOrchestrator

__all__ = ["VerificationOrchestrator"]
