"""Shared fakes for the role icon tests.

The fake directory keeps roles in a plain list so tests can inspect exactly
what was created, edited and deleted without talking to Discord.
"""
import io
import itertools
from types import SimpleNamespace
from unittest.mock import AsyncMock

import discord
import pytest
from PIL import Image

from roleicon.config import RoleIconConfig
from roleicon.roles import ROLE_ICONS_FEATURE


def http_error(cls=discord.HTTPException, status=400, text="Bad Request"):
    response = SimpleNamespace(status=status, reason=text)
    return cls(response, {"message": text, "code": 0})


class FakeRole:
    def __init__(self, role_id, name, unicode_emoji=None, icon=None, position=1, hoist=False, mentionable=False):
        self.id = role_id
        self.name = name
        self.unicode_emoji = unicode_emoji
        self.icon = icon
        self.position = position
        self.hoist = hoist
        self.mentionable = mentionable


class FakeMember:
    def __init__(self, member_id, roles=None):
        self.id = member_id
        self.mention = f"<@{member_id}>"
        self.roles = list(roles or [])


class FakeRoleDirectory:
    def __init__(self, roles=None, emojis=None, features=(ROLE_ICONS_FEATURE,)):
        self.roles = list(roles or [])
        self.emojis = dict(emojis or {})
        self.features = set(features)
        self.calls = []
        self.errors = {}
        self._ids = itertools.count(1000)

    def _maybe_fail(self, op):
        error = self.errors.get(op)
        if error is not None:
            raise error

    def supports_role_icons(self):
        return ROLE_ICONS_FEATURE in self.features

    def find_by_name(self, name):
        return next((r for r in self.roles if r.name == name), None)

    async def create(self, spec, *, reason):
        self.calls.append(("create", spec))
        self._maybe_fail("create")
        role = FakeRole(
            next(self._ids),
            spec.name,
            unicode_emoji=spec.unicode_emoji,
            icon=spec.icon,
            position=spec.position,
            hoist=spec.hoist,
            mentionable=spec.mentionable,
        )
        self.roles.append(role)
        return role

    async def edit(self, role, spec, *, reason):
        self.calls.append(("edit", spec))
        self._maybe_fail("edit")
        role.unicode_emoji = spec.unicode_emoji
        role.icon = spec.icon
        return role

    async def delete(self, role, *, reason):
        self.calls.append(("delete", role.name))
        self._maybe_fail("delete")
        self.roles.remove(role)

    async def assign_to_member(self, member, role, *, reason):
        self.calls.append(("assign", member.id, role.name))
        self._maybe_fail("assign")
        member.roles.append(role)

    def member_has_role(self, member, role):
        return any(r.id == role.id for r in member.roles)

    async def resolve_custom_emoji(self, emoji_id):
        self.calls.append(("resolve_emoji", emoji_id))
        self._maybe_fail("resolve_emoji")
        return self.emojis.get(emoji_id)

    async def read_emoji(self, emoji):
        self._maybe_fail("read_emoji")
        return emoji.data

    def ops(self):
        return [call[0] for call in self.calls]


@pytest.fixture
def config():
    return RoleIconConfig(prefix="iconrole_")


@pytest.fixture
def directory():
    return FakeRoleDirectory()


@pytest.fixture
def png_bytes():
    buf = io.BytesIO()
    Image.new("RGBA", (200, 120), (255, 0, 0, 255)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def image_source(png_bytes):
    source = SimpleNamespace(fetch_bytes=AsyncMock(return_value=png_bytes))
    return source


def attachment(url="https://cdn.example.com/icon.png", content_type="image/png"):
    return SimpleNamespace(url=url, content_type=content_type, filename=url.rsplit("/", 1)[-1])
