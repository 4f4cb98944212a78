"""
Reserve snapshot reader for the bonding curve program
Reads the on-chain BondingCurve account over JSON-RPC and turns it into a ReserveSnapshot
"""

import asyncio
import base64
import binascii
import struct
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Tuple

import aiohttp
from solders.pubkey import Pubkey

from curve_engine.core.config import RPCConfig
from curve_engine.core.curve_config import CurveConfig, CurveKind
from curve_engine.core.errors import SnapshotFetchError
from curve_engine.core.logger import get_logger
from curve_engine.core.metrics import LatencyTimer, MetricsCollector, get_metrics
from curve_engine.core.snapshot import ReserveSnapshot


logger = get_logger(__name__)


# PDA seed used by the program
BONDING_CURVE_SEED = b"bonding_curve"

# BondingCurve account layout (little-endian, after 8-byte discriminator):
#   32 bytes: creator
#    8 bytes: total_supply
#    8 bytes: reserve_balance (lamports)
#    8 bytes: reserve_token
#   32 bytes: token mint
#    2 bytes: reserve_ratio (bps)
#    1 byte:  bump
DISCRIMINATOR_SIZE = 8
_ACCOUNT_LAYOUT = struct.Struct("<32sQQQ32sHB")
BONDING_CURVE_ACCOUNT_SIZE = DISCRIMINATOR_SIZE + _ACCOUNT_LAYOUT.size


@dataclass
class BondingCurveAccount:
    """Decoded BondingCurve account"""
    creator: Pubkey
    total_supply: int
    reserve_balance: int  # lamports
    reserve_token: int  # token base units
    token: Pubkey
    reserve_ratio_bps: int
    bump: int

    def to_snapshot(self, slot: Optional[int] = None, observed_at: Optional[float] = None) -> ReserveSnapshot:
        return ReserveSnapshot(
            reserve_balance=self.reserve_balance,
            reserve_token_units=self.reserve_token,
            total_supply=self.total_supply,
            slot=slot,
            observed_at=observed_at,
            token=str(self.token)
        )


def decode_bonding_curve_account(raw_data: bytes) -> BondingCurveAccount:
    """
    Decode raw BondingCurve account data

    Args:
        raw_data: Account data including the discriminator

    Returns:
        BondingCurveAccount

    Raises:
        ValueError: If the data is shorter than the account layout
    """
    if len(raw_data) < BONDING_CURVE_ACCOUNT_SIZE:
        raise ValueError(
            f"bonding curve account too short: {len(raw_data)} < {BONDING_CURVE_ACCOUNT_SIZE} bytes"
        )

    (
        creator,
        total_supply,
        reserve_balance,
        reserve_token,
        token,
        reserve_ratio_bps,
        bump,
    ) = _ACCOUNT_LAYOUT.unpack_from(raw_data, DISCRIMINATOR_SIZE)

    return BondingCurveAccount(
        creator=Pubkey.from_bytes(creator),
        total_supply=total_supply,
        reserve_balance=reserve_balance,
        reserve_token=reserve_token,
        token=Pubkey.from_bytes(token),
        reserve_ratio_bps=reserve_ratio_bps,
        bump=bump
    )


class ReserveSnapshotReader(Protocol):
    """Anything that can produce a ReserveSnapshot for a token"""

    async def fetch_reserve_snapshot(self, token: str, curve: Optional[CurveConfig] = None) -> ReserveSnapshot:
        ...


class RpcReserveSnapshotReader:
    """
    Snapshot reader backed by Solana JSON-RPC getAccountInfo

    Usage:
        async with RpcReserveSnapshotReader(engine_config.rpc_config) as reader:
            snapshot = await reader.fetch_reserve_snapshot(mint)
    """

    def __init__(
        self,
        config: RPCConfig,
        session: Optional[aiohttp.ClientSession] = None,
        metrics: Optional[MetricsCollector] = None
    ):
        """
        Initialize reader

        Args:
            config: RPC configuration (url, program id, commitment, timeout)
            session: Optional externally owned aiohttp session
            metrics: Metrics collector (defaults to the global one)
        """
        self.config = config
        self.program_id = Pubkey.from_string(config.program_id)
        self.metrics = metrics or get_metrics()
        self._session = session
        self._owns_session = False
        self._pda_cache: Dict[Pubkey, Pubkey] = {}

        logger.info(
            "snapshot_reader_initialized",
            rpc_url=config.url,
            program_id=config.program_id,
            commitment=config.commitment
        )

    async def start(self) -> None:
        """Open an HTTP session if none was injected"""
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True

    async def stop(self) -> None:
        """Close the HTTP session if this reader opened it"""
        if self._owns_session and self._session is not None:
            await self._session.close()
        self._session = None
        self._owns_session = False

    async def __aenter__(self) -> "RpcReserveSnapshotReader":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()

    def derive_bonding_curve_pda(self, mint: Pubkey) -> Pubkey:
        """Bonding curve PDA for a mint (cached)"""
        if mint not in self._pda_cache:
            pda, _ = Pubkey.find_program_address([BONDING_CURVE_SEED, bytes(mint)], self.program_id)
            self._pda_cache[mint] = pda
        return self._pda_cache[mint]

    async def _call_rpc(self, method: str, params: List[Any]) -> Dict[str, Any]:
        if self._session is None:
            raise RuntimeError("HTTP session not initialized. Call start() first.")

        payload = {
            "jsonrpc": "2.0",
            "id": int(time.time() * 1000000),
            "method": method,
            "params": params
        }

        async def _make_request():
            async with self._session.post(self.config.url, json=payload) as response:
                return await response.json()

        return await asyncio.wait_for(_make_request(), timeout=self.config.timeout_s)

    async def fetch_curve_account(self, token: str) -> Tuple[BondingCurveAccount, Optional[int]]:
        """
        Fetch and decode the BondingCurve account for a mint

        Args:
            token: Mint address (base58)

        Returns:
            (BondingCurveAccount, slot the account was read at)

        Raises:
            SnapshotFetchError: On transport failure, timeout, RPC error,
                non-JSON body, missing account, foreign owner or malformed data
        """
        try:
            mint = Pubkey.from_string(token)
        except ValueError as e:
            raise SnapshotFetchError(token, f"invalid mint address: {e}") from e

        bonding_curve = self.derive_bonding_curve_pda(mint)

        try:
            with LatencyTimer(self.metrics, "snapshot_fetch"):
                response = await self._call_rpc(
                    "getAccountInfo",
                    [str(bonding_curve), {"encoding": "base64", "commitment": self.config.commitment}]
                )
        except asyncio.TimeoutError as e:
            self._record_failure(token, "timeout")
            raise SnapshotFetchError(token, f"timed out after {self.config.timeout_s}s") from e
        except aiohttp.ClientError as e:
            self._record_failure(token, "transport")
            raise SnapshotFetchError(token, f"transport error: {e}") from e
        except ValueError as e:
            # Body was not JSON (proxy error pages, truncated responses)
            self._record_failure(token, "invalid_response")
            raise SnapshotFetchError(token, f"invalid JSON-RPC response: {e}") from e

        if not isinstance(response, dict):
            self._record_failure(token, "invalid_response")
            raise SnapshotFetchError(token, f"invalid JSON-RPC response: {type(response).__name__}")

        if "error" in response:
            error = response["error"]
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            self._record_failure(token, "rpc_error")
            raise SnapshotFetchError(token, f"RPC error: {message}")

        result = response.get("result") or {}
        account_info = result.get("value")
        slot = (result.get("context") or {}).get("slot")

        if not account_info:
            self._record_failure(token, "not_found")
            raise SnapshotFetchError(token, f"bonding curve account {bonding_curve} not found")

        owner = account_info.get("owner")
        if owner != str(self.program_id):
            self._record_failure(token, "wrong_owner")
            raise SnapshotFetchError(token, f"account owned by {owner}, expected {self.program_id}")

        try:
            data_b64 = (account_info.get("data") or [""])[0]
            account = decode_bonding_curve_account(base64.b64decode(data_b64))
        except (ValueError, binascii.Error) as e:
            self._record_failure(token, "decode")
            raise SnapshotFetchError(token, f"malformed account data: {e}") from e

        if account.token != mint:
            self._record_failure(token, "mint_mismatch")
            raise SnapshotFetchError(token, f"account tracks mint {account.token}")

        return account, slot

    async def fetch_reserve_snapshot(self, token: str, curve: Optional[CurveConfig] = None) -> ReserveSnapshot:
        """
        Read the current reserve counters for a mint

        Args:
            token: Mint address (base58)
            curve: Curve the snapshot will be priced with. A reserve-ratio
                curve must carry the ratio stored on-chain.

        Returns:
            ReserveSnapshot tagged with slot, observation time and mint

        Raises:
            SnapshotFetchError: If the account cannot be read or its
                reserve ratio disagrees with curve
        """
        account, slot = await self.fetch_curve_account(token)

        if (
            curve is not None
            and curve.kind is CurveKind.CONSTANT_RESERVE_RATIO
            and curve.reserve_ratio_bps != account.reserve_ratio_bps
        ):
            self._record_failure(token, "ratio_mismatch")
            raise SnapshotFetchError(
                token,
                f"on-chain reserve ratio {account.reserve_ratio_bps} bps, "
                f"curve configured with {curve.reserve_ratio_bps} bps"
            )

        snapshot = account.to_snapshot(slot=slot, observed_at=time.time())

        self.metrics.increment_counter("snapshot_fetch_success")
        logger.debug(
            "reserve_snapshot_fetched",
            token=token,
            slot=slot,
            reserve_balance=snapshot.reserve_balance,
            reserve_token_units=snapshot.reserve_token_units,
            total_supply=snapshot.total_supply,
            reserve_ratio_bps=account.reserve_ratio_bps
        )
        return snapshot

    def _record_failure(self, token: str, reason: str) -> None:
        self.metrics.increment_counter("snapshot_fetch_errors", labels={"reason": reason})
        logger.warning("reserve_snapshot_fetch_failed", token=token, reason=reason)
