"""Pydantic schemas for the WebSocket envelopes: ``{type, payload}``.

Inbound and outbound envelopes are closed tagged unions keyed by ``type``.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import Field, TypeAdapter, ValidationError

from pulse.core.exceptions import InvalidEnvelopeError, UnknownMessageTypeError
from pulse.domain.models.base import CamelModel
from pulse.domain.models.proposal import Comment, Proposal, ProposalStatus, Vote
from pulse.domain.models.user import User


class InboundType(str, Enum):
    REGISTER_USER = "REGISTER_USER"
    ADD_PROPOSAL = "ADD_PROPOSAL"
    ADD_COMMENT = "ADD_COMMENT"
    ADD_VOTE = "ADD_VOTE"
    UPDATE_PROPOSAL_STATUS = "UPDATE_PROPOSAL_STATUS"
    USER_DISCONNECT = "USER_DISCONNECT"


class OutboundType(str, Enum):
    USER_REGISTERED = "USER_REGISTERED"
    INITIAL_DATA = "INITIAL_DATA"
    NEW_USER = "NEW_USER"
    NEW_PROPOSAL = "NEW_PROPOSAL"
    NEW_COMMENT = "NEW_COMMENT"
    NEW_VOTE = "NEW_VOTE"
    UPDATE_PROPOSAL_STATUS = "UPDATE_PROPOSAL_STATUS"
    UPDATE_USERS = "UPDATE_USERS"
    ERROR = "ERROR"


# --- Inbound payloads ---

class RegisterUserPayload(CamelModel):
    user_id: str


class ProposalCreate(CamelModel):
    title: str
    description: str
    creator_id: str
    treasury_phone: str


class AddCommentPayload(CamelModel):
    proposal_id: str
    content: str
    user_id: str


class AddVotePayload(CamelModel):
    proposal_id: str
    in_favor: bool
    user_id: str


class UpdateStatusPayload(CamelModel):
    proposal_id: str
    status: ProposalStatus


class UserDisconnectPayload(CamelModel):
    user_id: str


# --- Inbound envelopes ---

class RegisterUser(CamelModel):
    type: Literal["REGISTER_USER"]
    payload: RegisterUserPayload


class AddProposal(CamelModel):
    type: Literal["ADD_PROPOSAL"]
    payload: ProposalCreate


class AddComment(CamelModel):
    type: Literal["ADD_COMMENT"]
    payload: AddCommentPayload


class AddVote(CamelModel):
    type: Literal["ADD_VOTE"]
    payload: AddVotePayload


class UpdateProposalStatus(CamelModel):
    type: Literal["UPDATE_PROPOSAL_STATUS"]
    payload: UpdateStatusPayload


class UserDisconnect(CamelModel):
    type: Literal["USER_DISCONNECT"]
    payload: UserDisconnectPayload


InboundMessage = Annotated[
    Union[RegisterUser, AddProposal, AddComment, AddVote, UpdateProposalStatus, UserDisconnect],
    Field(discriminator="type"),
]

_inbound_adapter = TypeAdapter(InboundMessage)
_INBOUND_TYPES = {member.value for member in InboundType}


def parse_inbound(raw: Union[str, bytes]) -> InboundMessage:
    """Parse one frame into a typed inbound envelope.

    Raises InvalidEnvelopeError for anything that is not a well-formed
    envelope and UnknownMessageTypeError for a well-formed one whose
    ``type`` is not recognised.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise InvalidEnvelopeError(details={"reason": str(e)}) from e

    if not isinstance(data, dict) or not isinstance(data.get("type"), str):
        raise InvalidEnvelopeError(details={"reason": "envelope must be an object with a string type"})

    if data["type"] not in _INBOUND_TYPES:
        raise UnknownMessageTypeError(data["type"])

    try:
        return _inbound_adapter.validate_python(data)
    except ValidationError as e:
        raise InvalidEnvelopeError(
            details={"reason": e.errors(include_url=False, include_context=False, include_input=False)}
        ) from e


# --- Outbound payloads ---

class InitialDataPayload(CamelModel):
    proposals: List[Proposal]
    users: List[User]


class NewCommentPayload(CamelModel):
    proposal_id: str
    comment: Comment


class NewVotePayload(CamelModel):
    proposal_id: str
    vote: Vote


class StatusChangedPayload(CamelModel):
    proposal_id: str
    status: ProposalStatus
    updated_at: Optional[datetime] = None


class ErrorPayload(CamelModel):
    message: str
    code: Optional[str] = None


# --- Outbound envelopes ---

class UserRegistered(CamelModel):
    type: Literal["USER_REGISTERED"] = "USER_REGISTERED"
    payload: User


class InitialData(CamelModel):
    type: Literal["INITIAL_DATA"] = "INITIAL_DATA"
    payload: InitialDataPayload


class NewUser(CamelModel):
    type: Literal["NEW_USER"] = "NEW_USER"
    payload: User


class NewProposal(CamelModel):
    type: Literal["NEW_PROPOSAL"] = "NEW_PROPOSAL"
    payload: Proposal


class NewComment(CamelModel):
    type: Literal["NEW_COMMENT"] = "NEW_COMMENT"
    payload: NewCommentPayload


class NewVote(CamelModel):
    type: Literal["NEW_VOTE"] = "NEW_VOTE"
    payload: NewVotePayload


class ProposalStatusChanged(CamelModel):
    type: Literal["UPDATE_PROPOSAL_STATUS"] = "UPDATE_PROPOSAL_STATUS"
    payload: StatusChangedPayload


class UsersUpdated(CamelModel):
    type: Literal["UPDATE_USERS"] = "UPDATE_USERS"
    payload: List[User]


class ErrorMessage(CamelModel):
    type: Literal["ERROR"] = "ERROR"
    payload: ErrorPayload


OutboundMessage = Annotated[
    Union[
        UserRegistered,
        InitialData,
        NewUser,
        NewProposal,
        NewComment,
        NewVote,
        ProposalStatusChanged,
        UsersUpdated,
        ErrorMessage,
    ],
    Field(discriminator="type"),
]

outbound_adapter = TypeAdapter(OutboundMessage)


def serialize(message: OutboundMessage) -> str:
    return message.model_dump_json(by_alias=True)


def parse_outbound(raw: Union[str, bytes]) -> OutboundMessage:
    """Parse a server envelope on the client side."""
    return outbound_adapter.validate_json(raw)
