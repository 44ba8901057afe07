"""
Slots Cog
Commands:
  /pull   — Pulls the slot machine lever (costs 1 ticket)
  /units  — Checks how many units you have
"""

import asyncio
import logging

import discord
from discord import app_commands
from discord.ext import commands

from economy.slots import SlotMachine

log = logging.getLogger("slots.cog")


class Slots(commands.Cog):
    def __init__(self, bot: commands.Bot, machine: SlotMachine):
        self.bot     = bot
        self.machine = machine

    async def handle_pull(self, user_id: int) -> str:
        # Store writes end in fsync, keep them off the event loop
        return await asyncio.to_thread(self.machine.pull, user_id)

    async def handle_units(self, user_id: int) -> str:
        return await asyncio.to_thread(self.machine.units, user_id)

    async def reply(self, interaction: discord.Interaction, content: str):
        try:
            await interaction.response.send_message(content)
        except discord.HTTPException as e:
            # Balances are already written at this point; nothing to undo
            log.error("slash command cannot be responded to: %s", e)

    # ── /pull ─────────────────────────────────────────────────────────────────

    @app_commands.command(name="pull", description="Pulls the slot machine lever.")
    async def pull(self, interaction: discord.Interaction):
        content = await self.handle_pull(interaction.user.id)
        await self.reply(interaction, content)

    # ── /units ────────────────────────────────────────────────────────────────

    @app_commands.command(name="units", description="Checks how many units you have.")
    async def units(self, interaction: discord.Interaction):
        content = await self.handle_units(interaction.user.id)
        await self.reply(interaction, content)


async def setup(bot: commands.Bot):
    await bot.add_cog(Slots(bot, bot.machine))
