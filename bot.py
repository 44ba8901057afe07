import asyncio
import logging

import discord
from discord.ext import commands
from dotenv import load_dotenv

from config import ConfigError, Settings, load_settings
from economy.backup import BackupExporter, S3Uploader
from economy.ledger import LedgerStore
from economy.slots import SlotMachine

log = logging.getLogger("slots.bot")

intents = discord.Intents.default()


class SlotsBot(commands.Bot):
    def __init__(self, settings: Settings, machine: SlotMachine, exporter: BackupExporter):
        super().__init__(
            command_prefix=commands.when_mentioned,
            intents=intents,
            application_id=settings.application_id,
        )
        self.settings = settings
        self.machine  = machine
        self.exporter = exporter

    async def setup_hook(self):
        await self.load_extension("cogs.slots")
        await self.load_extension("cogs.backup")
        guild = discord.Object(id=self.settings.guild_id)
        self.tree.copy_global_to(guild=guild)
        await self.tree.sync(guild=guild)
        log.info("Commands synced to guild %s.", self.settings.guild_id)

    async def on_ready(self):
        log.info("%s has connected! (ID: %s)", self.user, self.user.id)

    async def close(self):
        await super().close()
        self.machine.tickets.close()
        self.machine.accounts.close()


def build_bot(settings: Settings) -> SlotsBot:
    tickets  = LedgerStore(settings.db_dir, "tickets")
    accounts = LedgerStore(settings.db_dir, "account")
    machine  = SlotMachine(tickets, accounts)
    uploader = S3Uploader(
        bucket     = settings.s3_bucket_name,
        region     = settings.s3_region,
        endpoint   = settings.s3_endpoint,
        access_key = settings.s3_access_key,
        secret_key = settings.s3_secret_key,
    )
    exporter = BackupExporter(
        stores   = [tickets, accounts],
        uploader = uploader,
        work_dir = settings.backup_dir,
        db_root  = settings.db_dir,
    )
    return SlotsBot(settings, machine, exporter)


async def main():
    load_dotenv()
    try:
        settings = load_settings()
    except ConfigError as e:
        discord.utils.setup_logging()
        log.error("%s", e)
        raise SystemExit(1) from e

    discord.utils.setup_logging(level=getattr(logging, settings.log_level, logging.INFO))
    bot = build_bot(settings)
    async with bot:
        await bot.start(settings.discord_token)


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
