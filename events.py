from typing import Any, NamedTuple

# Inbound events
CREATE_ROOM = "createRoom"
JOIN_ROOM = "joinRoom"
LEAVE_ROOM = "leaveRoom"
OFFER = "offer"
ANSWER = "answer"
ICE_CANDIDATE = "iceCandidate"
UPDATE_SCORE = "updateScore"
UPDATE_SETTINGS = "updateSettings"
START_GAME = "startGame"
PING = "ping"

# Outbound events
CONNECTED = "connected"
PONG = "pong"
ACK = "ack"
ERROR = "error"
ROOM_CREATED = "roomCreated"
ROOM_EXISTS = "roomExists"
PLAYER_JOINED = "playerJoined"
ROOM_READY = "roomReady"
ROOM_LEFT = "roomLeft"
PROMOTED_TO_HOST = "promotedToHost"
PLAYER_LEFT = "playerLeft"
PLAYER_DISCONNECTED = "playerDisconnected"
SETTINGS_UPDATED = "settingsUpdated"
GAME_STARTED = "gameStarted"
OPPONENT_SCORE_UPDATE = "opponentScoreUpdate"

ROOM_ERROR = "roomError"
OFFER_ERROR = "offerError"
ANSWER_ERROR = "answerError"
ICE_CANDIDATE_ERROR = "iceCandidateError"
SCORE_UPDATE_ERROR = "scoreUpdateError"

# Where a failed inbound event reports back when the client sent no ack id
ERROR_EVENTS = {
    CREATE_ROOM: ROOM_ERROR,
    JOIN_ROOM: ROOM_ERROR,
    LEAVE_ROOM: ROOM_ERROR,
    UPDATE_SETTINGS: ROOM_ERROR,
    START_GAME: ROOM_ERROR,
    OFFER: OFFER_ERROR,
    ANSWER: ANSWER_ERROR,
    ICE_CANDIDATE: ICE_CANDIDATE_ERROR,
    UPDATE_SCORE: SCORE_UPDATE_ERROR,
}


class Emit(NamedTuple):
    """One outbound message addressed to a single connection."""

    to: str
    event: str
    data: Any
