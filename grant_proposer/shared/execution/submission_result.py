"""
Submission Outcome
==================
Binary result of one retried submission.

A transaction that was sent but never confirmed is indistinguishable from
one that was never accepted, so there is no pending state: an attempt
sequence ends either CONFIRMED with a signature or FAILED.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Dict, Any

from solders.signature import Signature


class SubmissionStatus(Enum):
    """Terminal states of a submission."""

    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class SubmissionOutcome:
    """
    Result of RetryingSubmitter.submit().

    Usage:
        outcome = submitter.submit(instruction, signer)
        if outcome.confirmed:
            log(f"Landed: {outcome.signature}")
    """

    status: SubmissionStatus
    signature: Optional[Signature] = None
    attempts: int = 0
    last_error: Optional[str] = None

    @property
    def confirmed(self) -> bool:
        return self.status == SubmissionStatus.CONFIRMED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "status": self.status.value,
            "signature": str(self.signature) if self.signature else None,
            "attempts": self.attempts,
            "last_error": self.last_error,
        }

    def __repr__(self) -> str:
        if self.confirmed:
            return f"SubmissionOutcome(CONFIRMED: {str(self.signature)[:16]}..., attempts={self.attempts})"
        return f"SubmissionOutcome(FAILED: attempts={self.attempts}, {self.last_error})"


# ═══════════════════════════════════════════════════════════════════════════════
# FACTORY FUNCTIONS
# ═══════════════════════════════════════════════════════════════════════════════

def confirmed_outcome(signature: Signature, attempts: int) -> SubmissionOutcome:
    """Create a confirmed outcome."""
    return SubmissionOutcome(
        status=SubmissionStatus.CONFIRMED,
        signature=signature,
        attempts=attempts,
    )


def failed_outcome(attempts: int, last_error: Optional[str] = None) -> SubmissionOutcome:
    """Create a failed outcome."""
    return SubmissionOutcome(
        status=SubmissionStatus.FAILED,
        attempts=attempts,
        last_error=last_error,
    )
