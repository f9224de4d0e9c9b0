"""
Betting contract client: createPool submission and receipt handling via web3.

The contract ABI is loaded from the compiled artifact at
settings.betting_contract_abi_path (either a bare ABI list or a Hardhat-style
{"abi": [...]} document).
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, Field
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.logs import DISCARD

from pool_agent.core.exceptions import ConfigurationError
from pool_agent.core.logging import get_logger

if TYPE_CHECKING:
    from pool_agent.core.config import Settings

logger = get_logger(__name__)

POOL_CREATED_EVENT = "PoolCreated"


class CreatePoolParams(BaseModel):
    question: str
    options: list[str] = Field(default_factory=lambda: ["Yes", "No"])
    bets_close_at: int
    closure_criteria: str = ""
    closure_instructions: str = ""
    original_truth_social_post_id: str = ""

    def to_contract_args(self) -> dict[str, Any]:
        return {
            "question": self.question,
            "options": self.options,
            "betsCloseAt": self.bets_close_at,
            "closureCriteria": self.closure_criteria,
            "closureInstructions": self.closure_instructions,
            "originalTruthSocialPostId": self.original_truth_social_post_id,
        }


class ChainReceipt(BaseModel):
    status: Literal["success", "reverted"]
    events: list[dict[str, Any]] = Field(default_factory=list)
    block_number: int | None = None


def pool_id_from_events(events: list[dict[str, Any]]) -> str | None:
    """Pool id from the first PoolCreated event in a receipt, if any."""
    for event in events:
        if event.get("event") != POOL_CREATED_EVENT:
            continue
        pool_id = event.get("args", {}).get("poolId")
        if pool_id is not None:
            return str(pool_id)
    return None


def load_abi(path: str) -> list[dict[str, Any]]:
    artifact_path = Path(path)
    if not artifact_path.is_file():
        raise ConfigurationError("chain", ["betting_contract_abi_path"])
    document = json.loads(artifact_path.read_text(encoding="utf-8"))
    return document["abi"] if isinstance(document, dict) else document


class BettingContractClient:
    def __init__(
        self,
        rpc_url: str,
        private_key: str,
        contract_address: str,
        abi: list[dict[str, Any]],
        chain_id: int,
    ) -> None:
        self.w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self.account = self.w3.eth.account.from_key(private_key)
        self.chain_id = chain_id
        self.contract = self.w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(contract_address),
            abi=abi,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> BettingContractClient:
        return cls(
            rpc_url=settings.rpc_url,
            private_key=settings.private_key,
            contract_address=settings.betting_contract_address,
            abi=load_abi(settings.betting_contract_abi_path),
            chain_id=settings.chain_id,
        )

    async def submit_pool_creation(self, params: CreatePoolParams) -> str:
        """Sign and send createPool. Returns the 0x-prefixed transaction hash."""
        address = self.account.address
        tx = await self.contract.functions.createPool(params.to_contract_args()).build_transaction(
            {
                "from": address,
                "nonce": await self.w3.eth.get_transaction_count(address),
                "chainId": self.chain_id,
            }
        )
        signed = self.account.sign_transaction(tx)
        tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        tx_hex = self.w3.to_hex(tx_hash)
        logger.info("create_pool_tx_sent", tx_hash=tx_hex)
        return tx_hex

    async def wait_receipt(self, tx_hash: str, timeout: float) -> ChainReceipt:
        """Wait for one confirmation. Raises web3's TimeExhausted after `timeout` seconds."""
        receipt = await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        if receipt["status"] != 1:
            logger.warning("tx_reverted", tx_hash=tx_hash)
            return ChainReceipt(status="reverted", block_number=receipt.get("blockNumber"))

        logs = getattr(self.contract.events, POOL_CREATED_EVENT)().process_receipt(receipt, errors=DISCARD)
        events = [{"event": log["event"], "args": dict(log["args"])} for log in logs]
        return ChainReceipt(status="success", events=events, block_number=receipt.get("blockNumber"))
