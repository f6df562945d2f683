"""Application bootstrap and lifecycle management."""

import os
from typing import Protocol

from .config import DispatchSettings, resolve_db_path
from .dialogue import ConversationAgent, ConversationHistory
from .discord_bridge import DiscordBridge
from .dispatch import DeliveryRegistry, InterruptionController, OfflineBuffer, PacingScheduler
from .event_bus import EventBus
from .llm import FallbackLLMProvider, ILLMProvider, ReplyGenerator
from .logging_config import get_logger
from .memory import MemoryStore
from .output_router import OutputRouter
from .storage import IStorage, Storage
from .tasks import ReminderScheduler, TaskManager
from .tracker import Tracker
from .transport import ITransport, WhatsAppBridgeTransport

logger = get_logger(__name__)


class IApplication(Protocol):
    """Bootstrap and lifecycle."""

    async def start(self) -> None:
        """Initialize components in dependency order."""
        ...

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        ...

    async def reset(self) -> None:
        """Drop all conversation state and stored data."""
        ...


class Application:
    """Main application bootstrap."""

    def __init__(
        self,
        db_path: str | None = None,
        llm_provider: ILLMProvider | None = None,
        transport: ITransport | None = None,
        settings: DispatchSettings | None = None,
        enable_discord: bool | None = None,
    ):
        env_db_path = os.getenv("DATABASE_URL") if db_path is None else db_path
        self._db_path = resolve_db_path(env_db_path)
        self._injected_llm = llm_provider
        self._injected_transport = transport
        self._settings = settings
        if enable_discord is None:
            enable_discord = bool(os.getenv("DISCORD_TOKEN"))
        self._enable_discord = enable_discord

        # Components (will be initialized in start())
        self._storage: IStorage | None = None
        self._event_bus: EventBus | None = None
        self._tracker: Tracker | None = None
        self._llm: ILLMProvider | None = None
        self._transport: ITransport | None = None
        self._registry: DeliveryRegistry | None = None
        self._offline: OfflineBuffer | None = None
        self._scheduler: PacingScheduler | None = None
        self._memory: MemoryStore | None = None
        self._reminders: ReminderScheduler | None = None
        self._task_manager: TaskManager | None = None
        self._agent: ConversationAgent | None = None
        self._output_router: OutputRouter | None = None
        self._discord: DiscordBridge | None = None

    async def start(self) -> None:
        """Initialize components in dependency order."""
        logger.info("Starting application")
        settings = self._settings or DispatchSettings.from_env()

        # 1. Storage (no dependencies)
        self._storage = Storage(self._db_path)
        await self._storage.init()
        logger.info("Storage initialized")

        # 2. EventBus and Tracker
        self._event_bus = EventBus(self._storage)
        self._tracker = Tracker(self._event_bus, self._storage)
        await self._tracker.start()

        # 3. LLM chain and WhatsApp transport
        self._llm = self._injected_llm or FallbackLLMProvider.from_env()
        self._transport = self._injected_transport or WhatsAppBridgeTransport(
            base_url=os.getenv("WHATSAPP_BRIDGE_URL", "http://localhost:3000"),
            token=os.getenv("WHATSAPP_BRIDGE_TOKEN"),
        )

        # 4. Dispatch core; the offline buffer drains whenever the transport comes up
        self._registry = DeliveryRegistry()
        self._offline = OfflineBuffer()
        self._transport.on_ready(self._offline.flush)
        self._scheduler = PacingScheduler(
            self._registry,
            self._transport,
            self._offline,
            settings=settings,
            tracker=self._tracker,
        )
        logger.info("Dispatch core initialized")

        # 5. Memories, tasks and reminders
        self._memory = MemoryStore(self._storage)
        await self._memory.cleanup()
        self._reminders = ReminderScheduler(self._storage, self._scheduler, llm=self._llm)
        self._task_manager = TaskManager(self._storage, self._llm, self._reminders)
        await self._reminders.load_pending()

        # 6. ConversationAgent and OutputRouter
        history = ConversationHistory()
        self._agent = ConversationAgent(
            interruption=InterruptionController(self._registry),
            replies=ReplyGenerator(self._llm, history, self._memory),
            history=history,
            event_bus=self._event_bus,
            tracker=self._tracker,
            memory_store=self._memory,
            task_manager=self._task_manager,
            transport=self._transport,
        )
        self._output_router = OutputRouter(
            event_bus=self._event_bus,
            scheduler=self._scheduler,
            tracker=self._tracker,
            settings=settings,
        )
        await self._output_router.start()
        logger.info("OutputRouter started")

        # 7. Discord bridge (optional)
        if self._enable_discord:
            self._discord = DiscordBridge(
                token=os.environ["DISCORD_TOKEN"],
                main_channel_id=int(os.getenv("DISCORD_MAIN_CHANNEL_ID", "0")),
                owner_id=int(os.getenv("DISCORD_OWNER_ID", "0")),
                event_bus=self._event_bus,
                transport=self._transport,
                offline_buffer=self._offline,
            )
            await self._discord.start()

        logger.info("All components initialized successfully")

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        if self._discord:
            await self._discord.stop()
        if self._output_router:
            await self._output_router.stop()
        if self._reminders:
            await self._reminders.stop()
        if self._tracker:
            await self._tracker.stop()
        if self._transport and hasattr(self._transport, "close"):
            await self._transport.close()
        if self._storage:
            await self._storage.close()
            logger.info("Storage closed")

    async def reset(self) -> None:
        """Drop all conversation state and stored data."""
        # 1. Stop deliveries and reminders
        if self._scheduler:
            await self._scheduler.stop()
        if self._registry:
            self._registry.clear()
        if self._offline:
            dropped = self._offline.clear()
            if dropped:
                logger.info(f"Dropped {dropped} buffered sends")
        if self._reminders:
            await self._reminders.stop()

        # 2. Forget conversations
        if self._agent:
            self._agent.reset()

        # 3. Clear storage
        if self._storage:
            await self._storage.clear()
            logger.info("Storage cleared")
        logger.info("Reset complete")

    async def set_transport_status(self, status: str, reason: str | None = None) -> None:
        """Apply a connection status reported by the WhatsApp bridge."""
        transport = self.transport
        if status == "ready":
            await transport.mark_ready()
        elif status in ("disconnected", "qr"):
            transport.mark_disconnected(reason or status)
        else:
            raise ValueError(f"Unknown transport status: {status}")
        await self.tracker.track(
            event_type="transport_status",
            actor="whatsapp_transport",
            data={"status": status, "reason": reason},
        )

    def _require(self, component):
        if component is None:
            raise RuntimeError("Application not started")
        return component

    @property
    def storage(self) -> IStorage:
        """Get storage instance."""
        return self._require(self._storage)

    @property
    def tracker(self) -> Tracker:
        return self._require(self._tracker)

    @property
    def transport(self) -> ITransport:
        return self._require(self._transport)

    @property
    def registry(self) -> DeliveryRegistry:
        return self._require(self._registry)

    @property
    def offline_buffer(self) -> OfflineBuffer:
        return self._require(self._offline)

    @property
    def scheduler(self) -> PacingScheduler:
        return self._require(self._scheduler)

    @property
    def output_router(self) -> OutputRouter:
        return self._require(self._output_router)

    @property
    def task_manager(self) -> TaskManager:
        return self._require(self._task_manager)

    @property
    def agent(self) -> ConversationAgent:
        """Get conversation agent instance."""
        return self._require(self._agent)
