import os
import logging
import time
import discord
from discord.ext import commands
from dotenv import load_dotenv

from roleicon.config import ConfigError, load_config

load_dotenv()
TOKEN = os.getenv("DISCORD_TOKEN")
GUILD_ID = os.getenv("GUILD_ID")
SYNC_ON_START = os.getenv("SYNC_ON_START", "1") == "1"
SYNC_COOLDOWN_MIN = int(os.getenv("SYNC_COOLDOWN_MIN", "3"))
_LAST_SYNC_FILE = ".last_command_sync"

EXTENSIONS = (
    "cogs.roleicon",
)

logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] %(levelname)s:%(name)s: %(message)s",
)
log = logging.getLogger("roleiconbot")

# ---- Intents ----
# Role icons only need guild and role state; the invoking member comes with the interaction.
intents = discord.Intents.none()
intents.guilds = True

# ---- Bot ----
class RoleIconBot(commands.Bot):
    def __init__(self):
        super().__init__(command_prefix=commands.when_mentioned, intents=intents)
        self.roleicon_config = None
        try:
            self.roleicon_config = load_config()
        except ConfigError as e:
            log.error("[Config] Unable to read role icon config: %s", e)

    async def setup_hook(self):
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                log.info("Loaded %s", ext)
            except Exception:
                log.exception("Could not load %s", ext)

        # Slash command sync (guild-scoped when GUILD_ID is set, with cooldown)
        try:
            if not SYNC_ON_START:
                log.info("SYNC_ON_START=0, skipping command sync on startup.")
                return

            now = time.time()
            last = 0.0
            if os.path.exists(_LAST_SYNC_FILE):
                try:
                    with open(_LAST_SYNC_FILE, "r", encoding="utf-8") as fp:
                        last = float(fp.read().strip() or "0")
                except (OSError, ValueError):
                    last = 0.0

            if now - last < SYNC_COOLDOWN_MIN * 60:
                log.info("Skipping command sync (cooldown %s min).", SYNC_COOLDOWN_MIN)
                return

            if GUILD_ID and GUILD_ID.isdigit():
                guild = discord.Object(id=int(GUILD_ID))
                await self.tree.sync(guild=guild)
                log.info("Commands synced to guild %s.", GUILD_ID)
            else:
                await self.tree.sync()
                log.info("Global commands synced (may take a while to show up).")

            with open(_LAST_SYNC_FILE, "w", encoding="utf-8") as fp:
                fp.write(str(now))
        except (discord.HTTPException, OSError):
            log.exception("Command sync failed")

bot = RoleIconBot()

@bot.event
async def on_ready():
    log.info("Connected as %s (id: %s)", bot.user, bot.user.id)

if __name__ == "__main__":
    if not TOKEN:
        raise SystemExit("DISCORD_TOKEN is missing from .env")
    bot.run(TOKEN, log_handler=None)
