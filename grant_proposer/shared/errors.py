"""
Error Taxonomy
==============
Exceptions raised across the proposal pipeline.

Only TransientNetworkError is ever retried, and only by the
RetryingSubmitter up to its attempt bound. Everything else aborts the run.
A batch in which some items failed is not an exception: it is reported
through the recovery set carried by the pipeline result.
"""


class GrantProposerError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(GrantProposerError):
    """A required setting is missing or malformed."""

    def __init__(self, key: str, reason: str = "missing"):
        self.key = key
        super().__init__(f"{key}: {reason}")


class TransientNetworkError(GrantProposerError):
    """RPC transport failure, missing account, dropped or unconfirmed transaction."""


class SigningError(GrantProposerError):
    """The signing key or device is unavailable or refused to sign."""


class ProtocolPreconditionError(GrantProposerError):
    """On-chain or on-disk state does not allow the run to start."""


class ProposalCreationError(GrantProposerError):
    """The create-proposal transaction could not be confirmed."""


class SignOffError(GrantProposerError):
    """The proposal is fully populated but the sign-off transaction failed."""


class PayloadDecodeError(GrantProposerError, ValueError):
    """A work-item payload is not a valid serialized instruction."""
