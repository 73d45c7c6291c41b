"""Find, create, update and delete the per-member icon role.

The member to role association is never stored: the role is found again by
its name (``prefix + member id``) on every call. Two requests for the same
member running at the same time can both miss the lookup and create two
roles, or interleave their edits; whichever write Discord applies last wins.
No local lock guards against this.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import discord

from .config import RoleIconConfig
from .icons import CustomEmoji, IconSpec, ImageBytes, UnicodeEmoji

log = logging.getLogger(__name__)

# Position 0 is @everyone, so 1 is the lowest rank a created role can take.
LOWEST_ROLE_POSITION = 1
ROLE_ICONS_FEATURE = "ROLE_ICONS"


@dataclass(frozen=True)
class RoleEditSpec:
    unicode_emoji: Optional[str] = None
    icon: Optional[bytes] = None

    @property
    def display_icon(self):
        return self.icon if self.icon is not None else self.unicode_emoji


@dataclass(frozen=True)
class RoleCreateSpec(RoleEditSpec):
    name: str = ""
    hoist: bool = False
    mentionable: bool = False
    position: int = LOWEST_ROLE_POSITION


@dataclass(frozen=True)
class Failure:
    reason: str


class GuildRoleDirectory:
    """Role and emoji operations for one guild, backed by discord.py."""

    def __init__(self, guild: discord.Guild):
        self.guild = guild

    def supports_role_icons(self) -> bool:
        return ROLE_ICONS_FEATURE in self.guild.features

    def find_by_name(self, name: str) -> Optional[discord.Role]:
        return discord.utils.get(self.guild.roles, name=name)

    async def create(self, spec: RoleCreateSpec, *, reason: str) -> discord.Role:
        role = await self.guild.create_role(
            name=spec.name,
            hoist=spec.hoist,
            mentionable=spec.mentionable,
            permissions=discord.Permissions.none(),
            display_icon=spec.display_icon,
            reason=reason,
        )
        if role.position != spec.position:
            role = await role.edit(position=spec.position, reason=reason) or role
        return role

    async def edit(self, role: discord.Role, spec: RoleEditSpec, *, reason: str) -> discord.Role:
        # discord.py clears both icon fields before setting the one given here.
        return await role.edit(display_icon=spec.display_icon, reason=reason) or role

    async def delete(self, role: discord.Role, *, reason: str) -> None:
        await role.delete(reason=reason)

    async def assign_to_member(self, member: discord.Member, role: discord.Role, *, reason: str) -> None:
        await member.add_roles(role, reason=reason)

    def member_has_role(self, member: discord.Member, role: discord.Role) -> bool:
        return any(r.id == role.id for r in member.roles)

    async def resolve_custom_emoji(self, emoji_id: int) -> Optional[discord.Emoji]:
        try:
            return await self.guild.fetch_emoji(emoji_id)
        except discord.NotFound:
            return None

    async def read_emoji(self, emoji: discord.Emoji) -> bytes:
        return await emoji.read()


UNKNOWN_REMOTE_ERROR = "Unknown error while creating role. Bot owner should check logs."


def _failure_from(error: discord.HTTPException) -> Failure:
    return Failure(error.text or UNKNOWN_REMOTE_ERROR)


class RoleIconResolver:
    def __init__(self, config: RoleIconConfig, directory):
        self.config = config
        self.directory = directory

    def role_name(self, member) -> str:
        return self.config.role_name(member.id)

    def find_role(self, member):
        role = self.directory.find_by_name(self.role_name(member))
        if role is not None:
            log.debug("Found icon role %s for member %s", role.name, member.id)
        return role

    async def icon_fields(self, icon: IconSpec) -> RoleEditSpec:
        """Exactly one icon field is set; the other is always sent as cleared."""
        if isinstance(icon, UnicodeEmoji):
            return RoleEditSpec(unicode_emoji=icon.value, icon=None)
        if isinstance(icon, ImageBytes):
            return RoleEditSpec(unicode_emoji=None, icon=icon.data)
        if isinstance(icon, CustomEmoji):
            data = await self.directory.read_emoji(icon.emoji)
            return RoleEditSpec(unicode_emoji=None, icon=data)
        raise TypeError(f"unsupported icon kind: {type(icon).__name__}")

    async def upsert(self, member, icon: IconSpec):
        """Create the member's icon role or overwrite its icon.

        Returns the role, or a :class:`Failure` with the reason.
        """
        if not self.directory.supports_role_icons():
            return Failure(
                "This server cannot use role icons. It needs the Role Icons feature (boost level 2)."
            )

        reason = f"Role icon for {member.id}"
        try:
            fields = await self.icon_fields(icon)
            role = self.find_role(member)
            if role is None:
                spec = RoleCreateSpec(
                    name=self.role_name(member),
                    unicode_emoji=fields.unicode_emoji,
                    icon=fields.icon,
                )
                role = await self.directory.create(spec, reason=reason)
                log.info("Created icon role %s", spec.name)
                await self.directory.assign_to_member(member, role, reason=reason)
            else:
                role = await self.directory.edit(role, fields, reason=reason)
                log.info("Updated icon role %s", role.name)
                if not self.directory.member_has_role(member, role):
                    await self.directory.assign_to_member(member, role, reason=reason)
            return role
        except discord.HTTPException as e:
            log.exception("Error while creating or updating icon role for %s", member.id)
            return _failure_from(e)

    async def remove(self, member) -> Optional[Failure]:
        role = self.find_role(member)
        if role is None:
            return Failure("No role exists.")

        try:
            await self.directory.delete(role, reason=f"Role icon cleared by {member.id}")
        except discord.HTTPException:
            log.exception("Error while deleting icon role %s", role.name)
            return Failure("Error while deleting role. Bot owner should check logs.")
        log.info("Deleted icon role %s", role.name)
        return None
