"""Email and phone verification backends."""

from src.providers.verification.phone_verifiers import LocalPhoneVerifier, NumVerifyPhoneVerifier
from src.providers.verification.reacher_email_verifier import ReacherEmailVerifier

__all__ = ["LocalPhoneVerifier", "NumVerifyPhoneVerifier", "ReacherEmailVerifier"]
