"""
Retrying Submitter
==================
Sends one instruction as one transaction, with a bounded number of attempts.

Each attempt:
1. Fetch a fresh blockhash (an expired one is a guaranteed failure)
2. Build a single-instruction message paid for by the signer
3. Sign it
4. Submit and wait for confirmation

A failed blockhash fetch and a failed submission both consume an attempt.
Attempts follow each other immediately; there is no backoff. A signing
failure is not a network condition and propagates at once.
"""

from __future__ import annotations

from typing import List, Optional

from solders.instruction import Instruction
from solders.message import Message
from solders.signature import Signature

from grant_proposer.shared.errors import TransientNetworkError
from grant_proposer.shared.execution.submission_result import (
    SubmissionOutcome,
    confirmed_outcome,
    failed_outcome,
)
from grant_proposer.shared.infrastructure.ledger_client import LedgerClient
from grant_proposer.shared.infrastructure.signer import Signer
from grant_proposer.shared.system.logging import Logger

MAX_ATTEMPTS = 5


class RetryingSubmitter:
    """
    Usage:
        submitter = RetryingSubmitter(ledger)
        outcome = submitter.submit(instruction, signer)
        if outcome.confirmed:
            ...
    """

    def __init__(self, ledger: LedgerClient, max_attempts: int = MAX_ATTEMPTS):
        self.ledger = ledger
        self.max_attempts = max_attempts

        # Statistics
        self._submissions = 0
        self._confirmations = 0
        self._failures = 0
        self._attempts = 0

    def _send(self, instructions: List[Instruction], signer: Signer) -> Signature:
        """One attempt. Raises TransientNetworkError; SigningError passes through."""
        block_reference = self.ledger.latest_block_reference()
        message = Message.new_with_blockhash(instructions, signer.pubkey(), block_reference.blockhash)
        transaction = signer.sign(message)
        return self.ledger.submit_and_confirm(transaction, block_reference)

    def submit(self, instruction: Instruction, signer: Signer) -> SubmissionOutcome:
        self._submissions += 1
        last_error: Optional[str] = None

        for attempt in range(1, self.max_attempts + 1):
            self._attempts += 1
            try:
                signature = self._send([instruction], signer)
            except TransientNetworkError as e:
                last_error = str(e)
                Logger.warning(f"[SUBMIT] Attempt {attempt}/{self.max_attempts} failed: {e}")
                continue

            self._confirmations += 1
            Logger.info(f"[SUBMIT] Transaction confirmed: {signature}")
            return confirmed_outcome(signature, attempt)

        self._failures += 1
        Logger.error(f"[SUBMIT] Giving up after {self.max_attempts} attempts")
        return failed_outcome(self.max_attempts, last_error)

    def submit_once(self, instructions: List[Instruction], signer: Signer) -> Signature:
        """Single unretried attempt for steps whose failure is fatal to the run."""
        self._submissions += 1
        self._attempts += 1
        try:
            signature = self._send(instructions, signer)
        except TransientNetworkError:
            self._failures += 1
            raise

        self._confirmations += 1
        return signature

    def get_stats(self) -> dict:
        """Get submission statistics."""
        return {
            "submissions": self._submissions,
            "confirmations": self._confirmations,
            "failures": self._failures,
            "attempts": self._attempts,
        }
