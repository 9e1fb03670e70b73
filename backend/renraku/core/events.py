# Realtime channel event names (the "type" field of every JSON frame)

# Handshake
AUTH = "auth"
CONNECT = "connect"
ERROR = "error"

# Client -> server
JOIN_ROOM = "join-room"
LEAVE_ROOM = "leave-room"
SEND_MESSAGE = "send-message"
TYPING = "typing"
STOP_TYPING = "stop-typing"

# Server -> client
ROOM_JOINED = "room-joined"
ROOM_LEFT = "room-left"
MESSAGE_SENT = "message-sent"
NEW_MESSAGE = "new-message"
USER_TYPING = "user-typing"
USER_STOP_TYPING = "user-stop-typing"

# Client-side connection lifecycle
DISCONNECT = "disconnect"
RECONNECT_ATTEMPT = "reconnect_attempt"
RECONNECT = "reconnect"
RECONNECT_FAILED = "reconnect_failed"
