"""
Shared runtime objects handed to every Discord handler.
"""

from dataclasses import dataclass
from typing import Optional

from src.config.catalog import Catalogs, Persona, get_catalogs
from src.config.settings import BotSettings, get_settings
from src.services.audio_delivery import AudioDeliveryPipeline
from src.services.session_state import GuildSession, SessionRegistry
from src.services.turn_orchestrator import TurnOrchestrator


@dataclass
class BotContext:
    settings: BotSettings
    catalogs: Catalogs
    registry: SessionRegistry
    orchestrator: TurnOrchestrator
    delivery: AudioDeliveryPipeline

    def session_for(self, guild_id: int) -> GuildSession:
        return self.registry.get(guild_id)

    @property
    def direct_message_persona(self) -> Persona:
        """Direct messages have no guild session and always use the default persona."""
        return self.catalogs.personas[self.catalogs.personas.default]


def create_context(settings: Optional[BotSettings] = None, catalogs: Optional[Catalogs] = None) -> BotContext:
    settings = settings or get_settings()
    catalogs = catalogs or get_catalogs()
    delivery = AudioDeliveryPipeline()
    return BotContext(
        settings=settings,
        catalogs=catalogs,
        registry=SessionRegistry(catalogs=catalogs),
        orchestrator=TurnOrchestrator(delivery=delivery),
        delivery=delivery,
    )
