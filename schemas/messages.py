import math
from typing import Annotated, Any, Optional, Type, TypeVar, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, StrictFloat, StrictInt, ValidationError, field_validator

from errors import InvalidPayload


def _not_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be empty")
    return value


# Rejects blank strings; the value itself is passed through unchanged
NonEmptyStr = Annotated[str, AfterValidator(_not_blank)]

ModelT = TypeVar("ModelT", bound=BaseModel)


class SessionDescription(BaseModel):
    """SDP offer or answer. Only the shape is checked, never the SDP body."""

    model_config = ConfigDict(extra="allow")

    type: NonEmptyStr
    sdp: NonEmptyStr


class IceCandidate(BaseModel):
    model_config = ConfigDict(extra="allow")

    candidate: NonEmptyStr
    sdpMid: NonEmptyStr
    sdpMLineIndex: Optional[int] = None
    usernameFragment: Optional[str] = None


class ScoreUpdate(BaseModel):
    score: Union[StrictInt, StrictFloat]

    @field_validator("score")
    @classmethod
    def score_must_be_finite(cls, value):
        try:
            finite = math.isfinite(value)
        except OverflowError:
            # ints beyond float range
            finite = False
        if not finite:
            raise ValueError("score must be a finite number")
        return value


class GameSettings(BaseModel):
    """Game parameters chosen by the host. Unknown fields are kept as-is."""

    model_config = ConfigDict(extra="allow")

    mode: NonEmptyStr
    rounds: int = Field(ge=1)
    timeLimit: int = Field(ge=1)


def parse_payload(model: Type[ModelT], data: Any, room_code: Optional[str] = None) -> ModelT:
    """Validate ``data`` against ``model``, turning pydantic errors into InvalidPayload."""
    try:
        return model.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'payload'}: {err['msg']}" for err in e.errors()
        )
        raise InvalidPayload(f"Invalid {model.__name__}: {problems}", room_code=room_code) from e
