from typing import List, Tuple

from coercion import PAYLOAD_KEYS, RelayRequest
from errors import NotAuthorized, NotFound
from events import ANSWER, ICE_CANDIDATE, OFFER, OPPONENT_SCORE_UPDATE, UPDATE_SCORE, Emit
from logging_config import get_logger
from membership import Membership
from registry import RoomRegistry
from schemas.messages import IceCandidate, ScoreUpdate, SessionDescription, parse_payload

logger = get_logger(__name__)

PAYLOAD_MODELS = {
    OFFER: SessionDescription,
    ANSWER: SessionDescription,
    ICE_CANDIDATE: IceCandidate,
}


class SignalingRelay:
    """Strict 1:1 forwarder between the two members of a room.

    Payloads are checked for shape only; SDP and ICE contents pass through untouched.
    """

    def __init__(self, registry: RoomRegistry, membership: Membership):
        self.registry = registry
        self.membership = membership

    async def forward(self, event: str, sender: str, request: RelayRequest) -> Tuple[str, List[Emit]]:
        """Validate and route one offer/answer/iceCandidate/updateScore.

        Returns the resolved room code and the message for the peer. The list is empty
        when the sender is currently alone in the room.
        """
        code = self.membership.resolve(request.room_code, sender)
        async with self.registry.lock(code):
            room = self.registry.get(code)
            if room is None:
                raise NotFound(f"Room {code} not found", room_code=code)
            if sender not in room.members:
                logger.warning(f"Rejected {event} from non-member {sender} in room {code}")
                raise NotAuthorized(f"Not a member of room {code}", room_code=code)

            if event == UPDATE_SCORE:
                score = parse_payload(ScoreUpdate, {"score": request.payload}, code).score
                room.scores[sender] = score
                out_event = OPPONENT_SCORE_UPDATE
                data = {"roomCode": code, "roomId": code, "playerId": sender, "score": score}
            else:
                payload = parse_payload(PAYLOAD_MODELS[event], request.payload, code)
                out_event = event
                data = {
                    "roomCode": code,
                    "senderId": sender,
                    PAYLOAD_KEYS[event]: payload.model_dump(exclude_none=True),
                }

            self.registry.touch(room)
            peer = room.peer_of(sender)

        if peer is None:
            logger.debug(f"{event} from {sender} in room {code} has no peer to go to")
            return code, []
        logger.debug(f"Relaying {event} in room {code}: {sender} -> {peer}")
        return code, [Emit(peer, out_event, data)]
