"""HomePair Database Models."""

from homepair.models.pairing import PairingSession
from homepair.models.client import Client, ClientToken
from homepair.models.area import Area

__all__ = [
    "PairingSession",
    "Client",
    "ClientToken",
    "Area",
]
