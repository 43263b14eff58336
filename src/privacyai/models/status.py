"""
Connection and responder lifecycle states.
"""

from enum import Enum


class ConnectionStatus(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DEGRADED = "degraded"
    DISCONNECTED = "disconnected"


# Edges reachable through connect(); DISCONNECTED is only entered by close().
CONNECT_TRANSITIONS: dict[ConnectionStatus, set[ConnectionStatus]] = {
    ConnectionStatus.IDLE: {ConnectionStatus.CONNECTING},
    ConnectionStatus.CONNECTING: {ConnectionStatus.CONNECTED, ConnectionStatus.DEGRADED},
    ConnectionStatus.CONNECTED: set(),
    ConnectionStatus.DEGRADED: set(),
    ConnectionStatus.DISCONNECTED: set(),
}


class ResponderState(str, Enum):
    STARTING = "starting"
    SUBSCRIBING = "subscribing"
    LISTENING = "listening"
    DEGRADED = "degraded"  # alive but not listening
    STOPPED = "stopped"
