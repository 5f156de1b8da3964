"""Subprocess-as-RPC-peer bridge: framing, correlation and the peer session."""

from expo_mcp.bridge.contracts import ForwardTarget
from expo_mcp.bridge.correlation import CorrelationTable
from expo_mcp.bridge.session import PeerSession, resolve_peer_command
from expo_mcp.bridge.transport import FrameDecoder, FramedTransport
from expo_mcp.bridge.types import CapabilityDescriptor, PendingCall, SessionState

__all__ = [
    "CapabilityDescriptor",
    "CorrelationTable",
    "ForwardTarget",
    "FrameDecoder",
    "FramedTransport",
    "PeerSession",
    "PendingCall",
    "SessionState",
    "resolve_peer_command",
]
