"""Abstract base classes for email and phone verification backends."""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.verification import BackendStatus, VerificationResult


# Concrete implementations: ReacherEmailVerifier
# Located in: src/providers/verification/
class IEmailVerifier(ABC):
    """Contract for an email deliverability checker."""

    @abstractmethod
    async def verify(self, email: str) -> VerificationResult:
        """Verify one address.  Transport failures become an ``error`` result."""

    @abstractmethod
    async def check_available(self) -> BackendStatus:
        """Probe the backend; any HTTP response counts as available."""


# Concrete implementations: LocalPhoneVerifier, NumVerifyPhoneVerifier
# Located in: src/providers/verification/
class IPhoneVerifier(ABC):
    """Contract for a phone number validator."""

    @abstractmethod
    async def verify(self, phone: str) -> VerificationResult:
        """Verify one number.  Transport failures become an ``error`` result."""

    @abstractmethod
    async def check_available(self) -> BackendStatus:
        """Probe the backend; any HTTP response counts as available."""
