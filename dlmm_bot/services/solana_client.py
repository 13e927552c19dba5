"""Solana RPC gateway: wallet balances, signing and submission.

Implements WalletBalanceReader and ExecutionService on one AsyncClient.
"""

import logging

from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.core import RPCException
from solana.rpc.types import TxOpts
from solders.keypair import Keypair
from solders.message import to_bytes_versioned
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction
from spl.token.instructions import get_associated_token_address

from dlmm_bot.services.errors import TransactionFailedError, TransactionSimulationError
from dlmm_bot.utils.constants import SOL_MINT

logger = logging.getLogger(__name__)


def _is_missing_account(error: Exception) -> bool:
    text = str(error).lower()
    return "could not find account" in text or "invalid param: could not find" in text


def _simulation_logs(error: RPCException) -> list[str]:
    payload = error.args[0] if error.args else None
    data = getattr(payload, "data", None)
    return list(getattr(data, "logs", None) or [])


class SolanaGateway:
    def __init__(self, rpc_url: str, keypair: Keypair):
        self.rpc_url = rpc_url
        self.keypair = keypair
        self.client = AsyncClient(rpc_url, commitment=Confirmed)

    @classmethod
    def from_secret(cls, rpc_url: str, secret_key: str) -> "SolanaGateway":
        return cls(rpc_url, Keypair.from_base58_string(secret_key))

    @property
    def wallet_address(self) -> str:
        return str(self.keypair.pubkey())

    async def close(self):
        await self.client.close()

    async def get_balance(self, owner: str, mint: str) -> int:
        owner_key = Pubkey.from_string(owner)
        if mint == SOL_MINT:
            resp = await self.client.get_balance(owner_key, commitment=Confirmed)
            return int(resp.value)

        ata = get_associated_token_address(owner_key, Pubkey.from_string(mint))
        try:
            resp = await self.client.get_token_account_balance(ata, commitment=Confirmed)
        except (RPCException, SolanaRpcException) as e:
            if _is_missing_account(e):
                return 0
            raise
        return int(resp.value.amount)

    def sign(self, transaction: VersionedTransaction) -> VersionedTransaction:
        """Fill the wallet's signature slot, keeping any co-signer signatures."""
        message = transaction.message
        required = message.header.num_required_signatures
        signers = list(message.account_keys[:required])
        try:
            index = signers.index(self.keypair.pubkey())
        except ValueError as e:
            raise TransactionSimulationError(
                f"Wallet {self.wallet_address} is not a required signer"
            ) from e
        signatures = list(transaction.signatures)
        signatures[index] = self.keypair.sign_message(to_bytes_versioned(message))
        return VersionedTransaction.populate(message, signatures)

    async def submit(self, transaction: bytes) -> str:
        signed = self.sign(VersionedTransaction.from_bytes(transaction))
        try:
            resp = await self.client.send_raw_transaction(
                bytes(signed),
                opts=TxOpts(skip_preflight=False, preflight_commitment=Confirmed),
            )
        except RPCException as e:
            logs = _simulation_logs(e)
            raise TransactionSimulationError(f"Preflight rejected transaction: {e}", logs) from e

        signature = resp.value
        confirmation = await self.client.confirm_transaction(signature, commitment=Confirmed)
        status = confirmation.value[0] if confirmation.value else None
        if status is not None and status.err is not None:
            raise TransactionFailedError(f"Transaction {signature} failed: {status.err}")
        logger.info(f"Confirmed {signature}")
        return str(signature)
