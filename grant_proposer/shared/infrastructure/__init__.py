# Ledger access and transaction signing
from grant_proposer.shared.infrastructure.ledger_client import (
    BlockReference,
    LedgerClient,
)
from grant_proposer.shared.infrastructure.signer import (
    Signer,
    FileSigner,
    RemoteDeviceSigner,
    load_signer,
)
