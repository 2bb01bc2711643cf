"""Records passed between the scanner stages.

CandidateToken   - a mint seen in Pump.fun program activity (discovery output)
SurvivorRecord   - a candidate that passed the holder filter (enrichment output)
GraduationEvent  - a graduation classified from the PumpPortal feed (live mode)
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

WRAPPED_SOL_MINT = "So11111111111111111111111111111111111111112"


def build_links(mint: str) -> dict[str, str]:
    """External reference links for manual trading. Pure function of the mint."""
    return {
        "dexscreener": f"https://dexscreener.com/solana/{mint}",
        "birdeye": f"https://birdeye.so/token/{mint}?chain=solana",
        "rugcheck": f"https://rugcheck.xyz/tokens/{mint}",
        "gmgn": f"https://gmgn.ai/sol/token/{mint}",
    }


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class CandidateToken(BaseModel):
    """A mint first observed in a transaction's token-balance changes."""

    model_config = ConfigDict(frozen=True)

    mint: str
    signature: str
    block_time: int
    age_minutes: int

    @field_validator("mint")
    @classmethod
    def _valid_mint(cls, v: str) -> str:
        if not v:
            raise ValueError("mint must be non-empty")
        if v == WRAPPED_SOL_MINT:
            raise ValueError("wrapped SOL is never a candidate")
        return v


class SurvivorRecord(BaseModel):
    """An enriched candidate with enough holders to be reported."""

    model_config = ConfigDict(frozen=True)

    mint: str
    symbol: str = "UNKNOWN"
    name: str = ""
    holders: int = Field(ge=0)
    age_minutes: int = Field(ge=0)
    signature: str = ""
    block_time: int = 0
    links: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_candidate(
        cls,
        candidate: CandidateToken,
        holders: int,
        symbol: str = "UNKNOWN",
        name: str = "",
    ) -> SurvivorRecord:
        return cls(
            mint=candidate.mint,
            symbol=symbol,
            name=name,
            holders=holders,
            age_minutes=max(candidate.age_minutes, 0),
            signature=candidate.signature,
            block_time=candidate.block_time,
            links=build_links(candidate.mint),
        )

    def to_payload(self) -> dict[str, Any]:
        """Webhook document for the n8n pipeline."""
        return {
            "mint": self.mint,
            "symbol": self.symbol,
            "name": self.name,
            "holders": self.holders,
            "ageMinutes": self.age_minutes,
            "signature": self.signature,
            "blockTime": self.block_time,
            "links": dict(self.links),
            "source": "helius_pump_scanner",
            "detected_at": utc_now_iso(),
        }


class GraduationEvent(BaseModel):
    """A PumpPortal message classified as a bonding-curve graduation."""

    model_config = ConfigDict(frozen=True)

    mint: str = Field(min_length=1)
    symbol: str = "UNKNOWN"
    name: str = "UNKNOWN"
    liquidity_usd: float = 0.0
    market_cap: float = 0.0
    event_type: str = "graduation"
    raw: dict[str, Any] = Field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {
            "ca": self.mint,
            "symbol": self.symbol,
            "name": self.name,
            "liquidity_usd": self.liquidity_usd,
            "market_cap": self.market_cap,
            "event_type": self.event_type,
            "dex": "raydium",
            "source": "pumpportal_websocket",
            "received_at": utc_now_iso(),
            "raw_event": self.raw,
        }
