"""Connectors to the hosted backend"""

from bizpulse.connectors.backend_client import BackendClient, BackendError, RPCError, DecodeError
from bizpulse.connectors.crm_gateway import CRMGateway
from bizpulse.connectors.realtime import ChangeFeed, ChangeEvent, Channel, RealtimeClient

__all__ = [
    "BackendClient",
    "BackendError",
    "RPCError",
    "DecodeError",
    "CRMGateway",
    "ChangeFeed",
    "ChangeEvent",
    "Channel",
    "RealtimeClient",
]
