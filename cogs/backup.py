import asyncio
import logging

from discord.ext import commands, tasks

from economy.backup import BackupExporter

log = logging.getLogger("slots.backup")


class Backup(commands.Cog):
    """Sleeps one full interval, then runs one backup cycle. A failed cycle waits for the next one."""

    def __init__(self, bot: commands.Bot, exporter: BackupExporter, interval_hours: float):
        self.bot            = bot
        self.exporter       = exporter
        self.interval_hours = interval_hours

    async def cog_load(self):
        self.backup_loop.start()

    async def cog_unload(self):
        self.backup_loop.cancel()

    async def run_backup(self) -> str | None:
        try:
            # No timeout: a hung upload holds the loop until it returns
            return await asyncio.to_thread(self.exporter.run_once)
        except Exception:
            log.exception("backup: cycle failed, retrying at the next interval")
            return None

    async def cycle(self) -> str | None:
        # The wait is measured from the end of the previous cycle, so a slow
        # upload never makes the next one start straight away
        await asyncio.sleep(self.interval_hours * 3600)
        return await self.run_backup()

    @tasks.loop(seconds=0)
    async def backup_loop(self):
        await self.cycle()


async def setup(bot: commands.Bot):
    await bot.add_cog(Backup(bot, bot.exporter, bot.settings.backup_interval))
