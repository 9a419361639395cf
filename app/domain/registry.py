"""Domain models for Doma registry records.

Field names follow the Doma GraphQL schema (camelCase on the wire, snake_case
in Python). Unknown fields returned by activity fragments are kept so the
records can be passed back to clients untouched.
"""
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class RegistryModel(BaseModel):
    """Base for wire models: alias-aware, tolerant of extra fields."""

    class Config:
        populate_by_name = True
        extra = "allow"

    def to_wire(self) -> Dict[str, Any]:
        """Dump using the registry's camelCase field names."""
        return self.model_dump(by_alias=True, exclude_none=True)


class Payment(RegistryModel):
    """Amount paid or asked in a marketplace activity."""
    amount: Optional[Any] = None
    currency: Optional[str] = None


class Token(RegistryModel):
    """On-chain NFT representing a tokenized domain."""
    token_id: str = Field(alias="tokenId")
    owner: Optional[str] = None
    network_id: Optional[Any] = Field(default=None, alias="networkId")
    created_at: Optional[str] = Field(default=None, alias="createdAt")


class NameActivity(RegistryModel):
    """Registry-level event on a name (CLAIMED, RENEWED, TOKENIZED, DETOKENIZED)."""
    type: str
    tx_hash: Optional[str] = Field(default=None, alias="txHash")
    sld: Optional[str] = None
    tld: Optional[str] = None
    created_at: Optional[str] = Field(default=None, alias="createdAt")


class TokenActivity(RegistryModel):
    """Marketplace or transfer event on a domain token.

    Types seen in practice: MINTED, TRANSFERRED, LISTED, OFFER_RECEIVED,
    PURCHASED, LISTING_CANCELLED, OFFER_CANCELLED.
    """
    type: str
    tx_hash: Optional[str] = Field(default=None, alias="txHash")
    token_id: Optional[str] = Field(default=None, alias="tokenId")
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    finalized: Optional[bool] = None
    payment: Optional[Payment] = None
    buyer: Optional[str] = None
    seller: Optional[str] = None

    @property
    def amount(self) -> Optional[Any]:
        return self.payment.amount if self.payment else None


class NameRecord(RegistryModel):
    """A registered domain name with its tokens and name-level activity."""
    name: str
    expires_at: Optional[str] = Field(default=None, alias="expiresAt")
    tokenized_at: Optional[str] = Field(default=None, alias="tokenizedAt")
    eoi: Optional[Any] = None
    claimed_by: Optional[str] = Field(default=None, alias="claimedBy")
    transfer_lock: Optional[bool] = Field(default=None, alias="transferLock")
    tokens: List[Token] = Field(default_factory=list)
    activities: List[NameActivity] = Field(default_factory=list)

    @property
    def primary_token_id(self) -> Optional[str]:
        """Token id of the first token, which carries the marketplace history."""
        return self.tokens[0].token_id if self.tokens else None


class PollEvent(RegistryModel):
    """Event delivered by the Doma Poll API."""
    id: int
    type: str
    unique_id: Optional[str] = Field(default=None, alias="uniqueId")
    name: Optional[str] = None
    token_id: Optional[str] = Field(default=None, alias="tokenId")
    relay_id: Optional[str] = Field(default=None, alias="relayId")
    event_data: Dict[str, Any] = Field(default_factory=dict, alias="eventData")


class PollResponse(RegistryModel):
    """One page of Poll API events."""
    events: List[PollEvent] = Field(default_factory=list)
    last_id: Optional[int] = Field(default=None, alias="lastId")
    has_more_events: bool = Field(default=False, alias="hasMoreEvents")
