"""Process-wide service graph, built once by the application lifespan."""

from dataclasses import dataclass

from sqlalchemy.engine import Engine

from homepair.config import Settings
from homepair.services.auth_gate import UnifiedAuthGate
from homepair.services.client_store import ClientStore
from homepair.services.notifications import NotificationRegistry
from homepair.services.pairing_service import PairingSessionManager
from homepair.services.rate_limit import PinAttemptLimiter
from homepair.services.sweeper import ExpirySweeper
from homepair.services.token_service import TokenService


@dataclass
class Services:
    store: ClientStore
    tokens: TokenService
    registry: NotificationRegistry
    pairing: PairingSessionManager
    gate: UnifiedAuthGate
    sweeper: ExpirySweeper
    pin_limiter: PinAttemptLimiter


def build_services(engine: Engine, settings: Settings) -> Services:
    store = ClientStore(engine)
    tokens = TokenService(store, settings)
    registry = NotificationRegistry(store, settings)
    pairing = PairingSessionManager(store, tokens, registry, settings)
    return Services(
        store=store,
        tokens=tokens,
        registry=registry,
        pairing=pairing,
        gate=UnifiedAuthGate(tokens, store, settings),
        sweeper=ExpirySweeper(pairing, tokens, settings.sweep_interval_seconds),
        pin_limiter=PinAttemptLimiter(settings.pin_max_attempts, settings.pin_attempt_window_seconds),
    )
