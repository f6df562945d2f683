"""Discord side of the relay: mirrors WhatsApp traffic and relays operator replies."""

import asyncio

import discord
from discord import app_commands

from ..dispatch import OfflineBuffer
from ..event_bus import IEventBus
from ..logging_config import get_logger
from ..models import BusMessage, Topic
from ..transport.base import ITransport
from .embeds import (
    build_inbound_embed,
    normalize_phone,
    phone_from_channel_name,
    phone_from_footer,
    stalk_channel_name,
)

logger = get_logger(__name__)

IDLE_AFTER_SECONDS = 120.0


class DiscordBridge:
    """
    A discord.py client bound to the WhatsApp transport.

    Inbound WhatsApp messages are posted as embeds to the contact's
    `stalk-<phone>` channel when one exists, otherwise to the main channel.
    Messages typed in a stalk channel, or replies to a mirrored embed in
    the main channel, are sent to that contact through the offline buffer.
    """

    def __init__(
        self,
        token: str,
        main_channel_id: int,
        owner_id: int,
        event_bus: IEventBus,
        transport: ITransport,
        offline_buffer: OfflineBuffer,
        idle_after: float = IDLE_AFTER_SECONDS,
    ):
        self._token = token
        self._main_channel_id = main_channel_id
        self._owner_id = owner_id
        self._event_bus = event_bus
        self._transport = transport
        self._offline = offline_buffer
        self._idle_after = idle_after
        self._idle_task: asyncio.Task | None = None
        self._runner: asyncio.Task | None = None

        intents = discord.Intents.default()
        intents.message_content = True
        intents.guilds = True

        self.client = discord.Client(intents=intents)
        self.tree = app_commands.CommandTree(self.client)

        self._setup_events()
        self._setup_commands()

    async def start(self) -> None:
        self._event_bus.subscribe(Topic.INBOUND, self._mirror_inbound)
        self._runner = asyncio.create_task(self.client.start(self._token), name="discord")
        logger.info("Discord bridge starting")

    async def stop(self) -> None:
        self._event_bus.unsubscribe(Topic.INBOUND, self._mirror_inbound)
        if self._idle_task:
            self._idle_task.cancel()
            self._idle_task = None
        await self.client.close()
        if self._runner:
            await asyncio.gather(self._runner, return_exceptions=True)
            self._runner = None
        logger.info("Discord bridge stopped")

    def _setup_events(self) -> None:
        """Register event handlers."""

        @self.client.event
        async def on_ready():
            try:
                synced = await self.tree.sync()
                logger.info(f"Synced {len(synced)} commands")
            except Exception as e:
                logger.error(f"Command sync failed: {e}")
            logger.info(f"{self.client.user} is online")
            await self.touch_presence()

        @self.client.event
        async def on_message(message: discord.Message):
            await self.handle_discord_message(message)

    def _setup_commands(self) -> None:
        """Register slash commands."""

        @self.tree.command(name="stalk", description="Open a private channel for a WhatsApp contact")
        @app_commands.describe(phonenumber="Phone number with country code, digits only")
        async def cmd_stalk(interaction: discord.Interaction, phonenumber: str):
            await self.stalk(interaction, phonenumber)

        @self.tree.command(name="send", description="Send a WhatsApp message")
        @app_commands.describe(
            phonenumber="Phone number with country code",
            message="Message text",
        )
        async def cmd_send(interaction: discord.Interaction, phonenumber: str, message: str):
            phone = normalize_phone(phonenumber)
            if await self.relay_to_whatsapp(phone, message):
                await interaction.response.send_message(f"✅ Sent to {phone}", ephemeral=True)
            else:
                await interaction.response.send_message(
                    f"❌ Failed to send to {phone}", ephemeral=True
                )

    async def stalk(self, interaction: discord.Interaction, phonenumber: str) -> None:
        if interaction.user.id != self._owner_id:
            await interaction.response.send_message(
                "You are not authorized to use this command.", ephemeral=True
            )
            return

        guild = interaction.guild
        if guild is None:
            await interaction.response.send_message(
                "This command only works in a server.", ephemeral=True
            )
            return

        name = stalk_channel_name(phonenumber)
        existing = discord.utils.get(guild.text_channels, name=name)
        if existing:
            await interaction.response.send_message(
                f"A channel for {normalize_phone(phonenumber)} already exists: {existing.mention}",
                ephemeral=True,
            )
            return

        overwrites = {
            guild.default_role: discord.PermissionOverwrite(view_channel=False),
            interaction.user: discord.PermissionOverwrite(view_channel=True),
            guild.me: discord.PermissionOverwrite(view_channel=True),
        }
        try:
            channel = await guild.create_text_channel(
                name,
                topic=f"WhatsApp chat with {normalize_phone(phonenumber)}",
                overwrites=overwrites,
            )
        except discord.HTTPException as e:
            logger.error(f"Failed to create stalk channel: {e}")
            await interaction.response.send_message(
                "Failed to create channel. Please check my permissions.", ephemeral=True
            )
            return

        await interaction.response.send_message(
            f"Created new channel for {normalize_phone(phonenumber)}: {channel.mention}",
            ephemeral=True,
        )

    async def resolve_target_phone(self, message: discord.Message) -> str | None:
        """Which WhatsApp contact a Discord message is addressed to, if any."""
        channel = message.channel
        if channel.id == self._main_channel_id:
            if message.reference is None or message.reference.message_id is None:
                return None
            replied = message.reference.resolved
            if not isinstance(replied, discord.Message):
                try:
                    replied = await channel.fetch_message(message.reference.message_id)
                except discord.HTTPException as e:
                    logger.warning(f"Could not fetch replied message: {e}")
                    return None
            if not replied.embeds:
                return None
            return phone_from_footer(replied.embeds[0].footer.text)

        return phone_from_channel_name(getattr(channel, "name", None))

    async def handle_discord_message(self, message: discord.Message) -> None:
        if message.author.bot or not message.content:
            return
        phone = await self.resolve_target_phone(message)
        if not phone:
            return
        sent = await self.relay_to_whatsapp(phone, message.content)
        try:
            await message.add_reaction("✅" if sent else "❌")
        except discord.HTTPException as e:
            logger.debug(f"Could not react to message: {e}")

    async def relay_to_whatsapp(self, phone: str, text: str) -> bool:
        """Send operator text to a contact now, or buffer it until WhatsApp is ready."""
        try:
            await self._offline.defer_if_not_ready(
                self._transport.is_ready(),
                lambda: self._transport.send_fragment(phone, text),
            )
        except Exception as e:
            logger.error(f"Failed to relay Discord message: {e}", extra={"conversation": phone})
            return False
        return True

    def find_mirror_channel(self, phone: str):
        stalk = discord.utils.get(self.client.get_all_channels(), name=stalk_channel_name(phone))
        return stalk or self.client.get_channel(self._main_channel_id)

    async def _mirror_inbound(self, bus_message: BusMessage) -> None:
        if not self.client.is_ready():
            return
        await self.touch_presence()

        payload = bus_message.payload
        embed = build_inbound_embed(payload)
        channel = self.find_mirror_channel(payload.get("key", ""))
        if embed is None or channel is None:
            return
        await channel.send(embed=embed)

    async def touch_presence(self) -> None:
        """Show online now and go idle after a quiet period."""
        if self._idle_task:
            self._idle_task.cancel()
        try:
            await self.client.change_presence(
                status=discord.Status.online, activity=discord.Game(name="Online")
            )
        except Exception as e:
            logger.debug(f"Presence update failed: {e}")
        self._idle_task = asyncio.create_task(self._go_idle())

    async def _go_idle(self) -> None:
        await asyncio.sleep(self._idle_after)
        try:
            await self.client.change_presence(
                status=discord.Status.idle, activity=discord.Game(name="Offline")
            )
        except Exception as e:
            logger.debug(f"Presence update failed: {e}")
