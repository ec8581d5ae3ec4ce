"""
Transaction Signers
===================
One signing capability, two variants.

    FileSigner          Solana CLI keypair file (JSON array of 64 bytes)
    RemoteDeviceSigner  Ledger hardware wallet running the Solana app

The pipelines depend only on the Signer protocol. A signer that cannot
sign raises SigningError, which is never retried.

Usage:
    signer = load_signer("~/.config/solana/id.json")
    signer = load_signer("usb://ledger?key=0")
    tx = signer.sign(message)
"""

import json
import os
from typing import Optional, List, Any, Protocol
from urllib.parse import urlparse, parse_qs

from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import Transaction

from grant_proposer.shared.errors import SigningError
from grant_proposer.shared.system.logging import Logger


class Signer(Protocol):
    """Identity plus sign capability."""

    def pubkey(self) -> Pubkey:
        ...

    def sign(self, message: Message) -> Transaction:
        ...


# =============================================================================
# FILE SIGNER
# =============================================================================

class FileSigner:
    """Signs with an in-memory keypair loaded from a keypair file."""

    def __init__(self, keypair: Keypair):
        self.keypair = keypair

    @classmethod
    def from_file(cls, path: str) -> "FileSigner":
        path = os.path.expanduser(path)
        try:
            with open(path, "r") as f:
                raw = json.load(f)
            keypair = Keypair.from_bytes(bytes(raw))
        except (OSError, ValueError, TypeError) as e:
            raise SigningError(f"Cannot load keypair file {path}: {e}") from e

        Logger.info(f"[SIGNER] Loaded keypair {str(keypair.pubkey())[:12]}... from {path}")
        return cls(keypair)

    def pubkey(self) -> Pubkey:
        return self.keypair.pubkey()

    def sign(self, message: Message) -> Transaction:
        signature = self.keypair.sign_message(bytes(message))
        return Transaction.populate(message, [signature])


# =============================================================================
# REMOTE DEVICE SIGNER (LEDGER)
# =============================================================================

HARDENED = 0x80000000

# Solana Ledger app APDU constants
CLA = 0xE0
INS_GET_PUBKEY = 0x05
INS_SIGN_MESSAGE = 0x06
P1_CONFIRM = 0x01
P2_EXTEND = 0x01
P2_MORE = 0x02
MAX_CHUNK_SIZE = 255


def parse_derivation_path(key: Optional[str]) -> List[int]:
    """
    Turn the `key` query value of a usb:// locator into a BIP44 path.

    "" or None -> 44'/501'
    "0"        -> 44'/501'/0'
    "0/1"      -> 44'/501'/0'/1'
    """
    path = [44 | HARDENED, 501 | HARDENED]
    if not key:
        return path

    parts = [p.rstrip("'") for p in key.split("/")]
    if len(parts) > 2:
        raise SigningError(f"Invalid derivation key {key!r}: expected account[/change]")
    for part in parts:
        if not part.isdigit():
            raise SigningError(f"Invalid derivation key {key!r}")
        path.append(int(part) | HARDENED)
    return path


def serialize_derivation_path(path: List[int]) -> bytes:
    out = bytearray([len(path)])
    for index in path:
        out += index.to_bytes(4, "big")
    return bytes(out)


class RemoteDeviceSigner:
    """
    Signs on a Ledger device.

    The transport is any object with `exchange(apdu: bytes) -> bytes`;
    by default it is a ledgerblue dongle opened on first use.
    """

    def __init__(self, derivation_path: List[int], transport: Any = None):
        self.derivation_path = derivation_path
        self._transport = transport
        self._pubkey: Optional[Pubkey] = None

    @classmethod
    def from_uri(cls, uri: str, transport: Any = None) -> "RemoteDeviceSigner":
        parsed = urlparse(uri)
        if parsed.scheme != "usb" or parsed.netloc != "ledger":
            raise SigningError(
                f"Failed to parse {uri!r}. It must be of the form 'usb://ledger?key=0'."
            )
        key = parse_qs(parsed.query).get("key", [None])[0]
        return cls(parse_derivation_path(key), transport)

    def _exchange(self, ins: int, p1: int, p2: int, data: bytes) -> bytes:
        if self._transport is None:
            try:
                from ledgerblue.comm import getDongle
                self._transport = getDongle(debug=False)
            except Exception as e:
                raise SigningError(
                    f"Failed to find a remote wallet, maybe Ledger is not connected or locked: {e}"
                ) from e

        apdu = bytes([CLA, ins, p1, p2, len(data)]) + data
        try:
            return bytes(self._transport.exchange(apdu))
        except Exception as e:
            raise SigningError(f"Ledger rejected request (INS {ins:#04x}): {e}") from e

    def pubkey(self) -> Pubkey:
        if self._pubkey is None:
            resp = self._exchange(
                INS_GET_PUBKEY, P1_CONFIRM, 0, serialize_derivation_path(self.derivation_path)
            )
            if len(resp) < 32:
                raise SigningError(f"Ledger returned a {len(resp)}-byte public key")
            self._pubkey = Pubkey(resp[:32])
            Logger.info(f"[SIGNER] Ledger key {str(self._pubkey)[:12]}...")
        return self._pubkey

    def sign_message_bytes(self, message_bytes: bytes) -> Signature:
        """Stream the message to the device in 255-byte chunks."""
        header = bytes([1]) + serialize_derivation_path(self.derivation_path)
        first_room = MAX_CHUNK_SIZE - len(header)

        chunks = [header + message_bytes[:first_room]]
        rest = message_bytes[first_room:]
        while rest:
            chunks.append(rest[:MAX_CHUNK_SIZE])
            rest = rest[MAX_CHUNK_SIZE:]

        resp = b""
        for i, chunk in enumerate(chunks):
            p2 = 0
            if i > 0:
                p2 |= P2_EXTEND
            if i < len(chunks) - 1:
                p2 |= P2_MORE
            resp = self._exchange(INS_SIGN_MESSAGE, P1_CONFIRM, p2, chunk)

        if len(resp) < 64:
            raise SigningError(f"Ledger returned a {len(resp)}-byte signature")
        return Signature(resp[:64])

    def sign(self, message: Message) -> Transaction:
        Logger.info("[SIGNER] Confirm the transaction on the Ledger device...")
        signature = self.sign_message_bytes(bytes(message))
        return Transaction.populate(message, [signature])


def load_signer(location: str) -> Signer:
    """Pick the signer variant from the wallet location."""
    if location.startswith("usb://"):
        return RemoteDeviceSigner.from_uri(location)
    return FileSigner.from_file(location)
