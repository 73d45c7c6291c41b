from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Optional

import discord
from discord import app_commands
from discord.ext import commands

from roleicon.config import RoleIconConfig, load_config
from roleicon.icons import AttachmentSource, Rejection, classify_attachment, classify_emoji
from roleicon.roles import Failure, GuildRoleDirectory, RoleIconResolver

log = logging.getLogger(__name__)

CMD_ROLEICON = "roleicon"
SUBCMD_SET_EMOJI = "set emoji"
SUBCMD_SET_IMAGE = "set image"
SUBCMD_CLEAR = "clear"

SUCCESS_COLOR = 0x00FF00
ERROR_COLOR = 0xFF0000

UNKNOWN_SET_ERROR = "Unknown error while creating role. Bot owner should check logs."
UNKNOWN_CLEAR_ERROR = "Unknown error while clearing role. Bot owner should check logs."
REMOTE_SET_ERROR = "Error setting role icon"
REMOTE_CLEAR_ERROR = "Error clearing role icon"


@dataclass
class IconCommand:
    name: str
    subcommand: str
    member: Any
    guild: Optional[Any]
    text: Optional[str] = None
    attachment: Optional[Any] = None


@dataclass(frozen=True)
class Reply:
    title: str
    description: str
    color: int
    ephemeral: bool = True

    @classmethod
    def success(cls, description: str) -> "Reply":
        return cls("Success", description, SUCCESS_COLOR)

    @classmethod
    def error(cls, description: str) -> "Reply":
        return cls("Error", description, ERROR_COLOR)

    def to_embed(self) -> discord.Embed:
        return discord.Embed(title=self.title, description=self.description, color=self.color)


class RoleIconDispatcher:
    """Routes a /roleicon invocation and turns its outcome into one reply."""

    def __init__(
        self,
        config: RoleIconConfig,
        attachments: AttachmentSource,
        directory_factory: Callable[[Any], Any] = GuildRoleDirectory,
    ):
        self.config = config
        self.attachments = attachments
        self.directory_factory = directory_factory
        self._routes = {
            SUBCMD_SET_EMOJI: (self._set_emoji, REMOTE_SET_ERROR, UNKNOWN_SET_ERROR),
            SUBCMD_SET_IMAGE: (self._set_image, REMOTE_SET_ERROR, UNKNOWN_SET_ERROR),
            SUBCMD_CLEAR: (self._clear, REMOTE_CLEAR_ERROR, UNKNOWN_CLEAR_ERROR),
        }

    async def handle(self, command: IconCommand) -> Optional[Reply]:
        if command.name != CMD_ROLEICON:
            return None
        route = self._routes.get(command.subcommand)
        if route is None:
            return None

        handler, remote_error, unknown_error = route
        member_id = getattr(command.member, "id", None)
        log.info("Got /%s %s from member %s", command.name, command.subcommand, member_id)
        try:
            return await handler(command)
        except discord.HTTPException as e:
            log.exception("Error in /%s %s for %s", command.name, command.subcommand, member_id)
            if not e.text:
                return Reply.error(unknown_error)
            return Reply.error(f"{remote_error}: {e.text}")
        except Exception:
            log.exception("Unknown error in /%s %s for %s", command.name, command.subcommand, member_id)
            return Reply.error(unknown_error)

    def _resolver(self, command: IconCommand) -> RoleIconResolver:
        if command.guild is None:
            raise RuntimeError("role icon command used outside of a guild")
        return RoleIconResolver(self.config, self.directory_factory(command.guild))

    async def _set_emoji(self, command: IconCommand) -> Reply:
        resolver = self._resolver(command)
        member = command.member
        text = (command.text or "").strip()

        icon = await classify_emoji(text, resolver.directory)
        if isinstance(icon, Rejection):
            return Reply.error(icon.reason)

        result = await resolver.upsert(member, icon)
        if isinstance(result, Failure):
            return Reply.error(result.reason)

        log.info("Set emoji icon for %s", member.id)
        return Reply.success(f"Set {member.mention}'s role icon to {text}.")

    async def _set_image(self, command: IconCommand) -> Reply:
        resolver = self._resolver(command)
        member = command.member
        attachment = command.attachment

        icon = await classify_attachment(attachment, self.attachments)
        if isinstance(icon, Rejection):
            return Reply.error(icon.reason)

        result = await resolver.upsert(member, icon)
        if isinstance(result, Failure):
            return Reply.error(result.reason)

        log.info("Set image icon for %s from %s", member.id, attachment.url)
        return Reply.success(f"Set {member.mention}'s role icon to {attachment.url}.")

    async def _clear(self, command: IconCommand) -> Reply:
        resolver = self._resolver(command)
        member = command.member

        failure = await resolver.remove(member)
        if failure is not None:
            return Reply.error(f"Failed to delete role: {failure.reason}")

        log.info("Cleared icon role for %s", member.id)
        return Reply.success(f"Cleared icon role for {member.mention}.")


class RoleIcon(commands.Cog):
    """Self-service role icons: one role per member that only carries an icon."""

    def __init__(self, bot: commands.Bot, dispatcher: RoleIconDispatcher):
        self.bot = bot
        self.dispatcher = dispatcher

    group = app_commands.Group(name=CMD_ROLEICON, description="Sets or removes your role icon.", guild_only=True)
    set_group = app_commands.Group(name="set", description="Sets your role icon.", parent=group)

    async def _run(self, interaction: discord.Interaction, subcommand: str, **options):
        await interaction.response.defer(ephemeral=True)
        command = IconCommand(
            name=CMD_ROLEICON,
            subcommand=subcommand,
            member=interaction.user,
            guild=interaction.guild,
            **options,
        )
        reply = await self.dispatcher.handle(command)
        if reply is None:
            return
        try:
            await interaction.followup.send(embed=reply.to_embed(), ephemeral=reply.ephemeral)
        except discord.HTTPException:
            log.exception("Could not send /%s %s reply", CMD_ROLEICON, subcommand)

    @set_group.command(name="emoji", description="Sets your role icon with an emoji.")
    @app_commands.describe(emoji="Emoji to use as your role icon.")
    async def set_emoji(self, interaction: discord.Interaction, emoji: str):
        await self._run(interaction, SUBCMD_SET_EMOJI, text=emoji)

    @set_group.command(name="image", description="Sets your role icon with an image you upload.")
    @app_commands.describe(image="Image to use as your role icon.")
    async def set_image(self, interaction: discord.Interaction, image: discord.Attachment):
        await self._run(interaction, SUBCMD_SET_IMAGE, attachment=image)

    @group.command(name="clear", description="Clears your role icon.")
    async def clear(self, interaction: discord.Interaction):
        await self._run(interaction, SUBCMD_CLEAR)


async def setup(bot: commands.Bot):
    config = getattr(bot, "roleicon_config", None) or load_config()
    cog = RoleIcon(bot, RoleIconDispatcher(config, AttachmentSource()))
    await bot.add_cog(cog)
    gid = os.getenv("GUILD_ID")
    gobj = discord.Object(id=int(gid)) if gid and gid.isdigit() else None
    if gobj:
        try:
            bot.tree.add_command(cog.group, guild=gobj)
        except app_commands.CommandAlreadyRegistered:
            bot.tree.remove_command(cog.group.name, guild=gobj)
            bot.tree.add_command(cog.group, guild=gobj)
