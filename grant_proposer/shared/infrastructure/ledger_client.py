"""
Ledger Client
=============
Thin façade over the Solana JSON-RPC client.

Exposes exactly the three calls the pipelines need. Every failure, whether
transport, RPC error, missing account, unconfirmed transaction or on-chain
error, surfaces as TransientNetworkError so callers can decide whether to retry.
"""

from dataclasses import dataclass

from solana.rpc.api import Client
from solana.rpc.commitment import Commitment
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction

from grant_proposer.shared.errors import TransientNetworkError
from grant_proposer.shared.system.logging import Logger


@dataclass(frozen=True)
class BlockReference:
    """Recent blockhash plus the last block height at which it is valid."""

    blockhash: Hash
    last_valid_block_height: int


class LedgerClient:
    """
    RPC façade used by the submitter and the pipelines.

    Usage:
        ledger = LedgerClient("https://api.mainnet-beta.solana.com")
        ref = ledger.latest_block_reference()
        sig = ledger.submit_and_confirm(signed_tx, ref)
    """

    def __init__(self, endpoint: str, commitment: str = "confirmed", timeout: float = 30.0):
        self.endpoint = endpoint
        self.commitment = Commitment(commitment)
        self.client = Client(endpoint, commitment=self.commitment, timeout=timeout)

        Logger.debug(f"[LEDGER] Client ready: {endpoint} ({commitment})")

    def latest_block_reference(self) -> BlockReference:
        """Fetch a fresh blockhash. Blockhashes expire after ~150 blocks."""
        try:
            resp = self.client.get_latest_blockhash(commitment=self.commitment)
        except Exception as e:
            raise TransientNetworkError(f"getLatestBlockhash failed: {e}") from e

        value = resp.value
        Logger.debug(f"[LEDGER] Fresh blockhash: {str(value.blockhash)[:16]}...")
        return BlockReference(
            blockhash=value.blockhash,
            last_valid_block_height=value.last_valid_block_height,
        )

    def submit_and_confirm(self, transaction: Transaction, block_reference: BlockReference) -> Signature:
        """Send a signed transaction and block until the node confirms it."""
        opts = TxOpts(
            skip_confirmation=False,
            preflight_commitment=self.commitment,
            last_valid_block_height=block_reference.last_valid_block_height,
        )
        try:
            resp = self.client.send_transaction(transaction, opts=opts)
        except Exception as e:
            raise TransientNetworkError(f"sendTransaction failed: {e}") from e

        signature = resp.value
        self._check_status(signature)
        return signature

    def _check_status(self, signature: Signature) -> None:
        """A landed transaction can still have failed on-chain."""
        try:
            resp = self.client.get_signature_statuses([signature])
        except Exception as e:
            raise TransientNetworkError(f"getSignatureStatuses({signature}) failed: {e}") from e

        status = resp.value[0] if resp.value else None
        if status is None:
            raise TransientNetworkError(f"Transaction {signature} was not confirmed")
        if status.err is not None:
            raise TransientNetworkError(f"Transaction {signature} failed on-chain: {status.err}")

    def read_account(self, address: Pubkey) -> bytes:
        """Return the raw data of an account."""
        try:
            resp = self.client.get_account_info(address, commitment=self.commitment)
        except Exception as e:
            raise TransientNetworkError(f"getAccountInfo({address}) failed: {e}") from e

        if resp.value is None:
            raise TransientNetworkError(f"Account {address} not found")

        return bytes(resp.value.data)
