# guild_config.py
"""
Guild Configuration Commands
Allows guild admins to configure per-guild settings via Discord commands,
including the AFK channel used by voice tracking.
"""

from typing import Optional, Union

import discord
from discord.ext import commands
from goodwill.base_cog import BaseCog, logger
from goodwill.core.errors import UserFeedback, UserInputError


class GuildConfigCog(BaseCog):
    """Commands for managing guild-specific configuration."""

    def __init__(self, bot):
        super().__init__(bot)
        self.bot = bot

    async def cog_check(self, ctx):
        """Guild administrators or the bot owner only."""
        if ctx.guild is None:
            raise commands.NoPrivateMessage()

        if await self.bot.is_owner(ctx.author):
            return True

        if ctx.author.guild_permissions.administrator:
            return True

        raise commands.MissingPermissions(["administrator"])

    def _split_setting(self, setting: str):
        """
        Parse ``CogName.field_name`` and check it can be overridden per guild.

        Returns:
            (cog_name, field_name, field_meta, error_message)
        """
        if "." not in setting:
            return None, None, None, (
                "Invalid setting format. Use: `CogName.field_name`\n"
                "Example: `Activity.leaderboard_default_limit`"
            )

        cog_name, field_name = setting.split(".", 1)
        schema = self.bot.config_manager.get_schema(cog_name)
        if schema is None:
            return None, None, None, f"Unknown cog: {cog_name}"

        field_meta = schema.fields.get(field_name)
        if field_meta is None:
            return None, None, None, f"Unknown setting: {field_name} in {cog_name}"

        if not field_meta.guild_override:
            return None, None, None, f"Setting `{setting}` cannot be overridden per-guild"

        return cog_name, field_name, field_meta, None

    def _is_override(self, guild_id: int, cog_name: str, field_name: str) -> bool:
        overrides = self.bot.config_manager.get_guild_overrides(guild_id)
        return field_name in overrides.get(cog_name, {})

    @commands.group(name="guildconfig", aliases=["gc"], help="Manage guild-specific configuration")
    async def guildconfig(self, ctx):
        """Guild configuration command group."""
        if ctx.invoked_subcommand is None:
            await ctx.send_help(ctx.command)

    @guildconfig.command(name="list", help="List all configurable guild settings")
    async def list_settings(self, ctx):
        """List all settings that can be configured per-guild."""
        categorized = {}

        for cog_name, schema in self.bot.config_manager.schemas.items():
            for field_name, field_meta in schema.fields.items():
                if not field_meta.guild_override:
                    continue
                categorized.setdefault(field_meta.category, []).append(f"{cog_name}.{field_name}")

        embed = discord.Embed(
            title="⚙️ Guild-Configurable Settings",
            description="These settings can be customized for your guild:",
            color=discord.Color.blue()
        )

        for category in sorted(categorized.keys()):
            embed.add_field(
                name=f"📂 {category}",
                value="\n".join(f"• `{s}`" for s in sorted(categorized[category])),
                inline=False
            )

        prefix = ctx.clean_prefix
        embed.set_footer(text=f"Use {prefix}gc show <setting> to view • {prefix}gc set <setting> <value> to change")
        await ctx.send(embed=embed)

    @guildconfig.command(name="show", help="Show current value of a guild setting")
    async def show_setting(self, ctx, *, setting: str = None):
        """Show the current value of one guild setting, or all of them."""
        manager = self.bot.config_manager

        if not setting:
            categorized = {}
            for cog_name, schema in manager.schemas.items():
                for field_name, field_meta in schema.fields.items():
                    if not field_meta.guild_override:
                        continue
                    value = manager.get(cog_name, field_name, ctx.guild.id)
                    if self._is_override(ctx.guild.id, cog_name, field_name):
                        line = f"✏️ `{cog_name}.{field_name}`: **{value}**"
                    else:
                        line = f"🌐 `{cog_name}.{field_name}`: {value}"
                    categorized.setdefault(field_meta.category, []).append(line)

            embed = discord.Embed(
                title=f"⚙️ Guild Configuration: {ctx.guild.name}",
                color=discord.Color.blue()
            )
            for category in sorted(categorized.keys()):
                embed.add_field(name=f"📂 {category}", value="\n".join(sorted(categorized[category])), inline=False)

            embed.set_footer(text="✏️ = Custom guild value • 🌐 = Using global default")
            return await ctx.send(embed=embed)

        cog_name, field_name, field_meta, error = self._split_setting(setting)
        if error:
            return await UserFeedback.error(ctx, error)

        guild_value = manager.get(cog_name, field_name, ctx.guild.id)
        global_value = manager.get(cog_name, field_name)
        is_override = self._is_override(ctx.guild.id, cog_name, field_name)

        embed = discord.Embed(
            title=f"⚙️ Setting: {setting}",
            description=field_meta.description,
            color=discord.Color.green() if is_override else discord.Color.blue()
        )
        embed.add_field(name="Current Value", value=f"`{guild_value}`", inline=False)

        if is_override:
            embed.add_field(name="Status", value="✏️ Custom guild override", inline=True)
            embed.add_field(name="Global Default", value=f"`{global_value}`", inline=True)
        else:
            embed.add_field(name="Status", value="🌐 Using global default", inline=True)

        constraints = []
        if field_meta.min_value is not None:
            constraints.append(f"Min: {field_meta.min_value}")
        if field_meta.max_value is not None:
            constraints.append(f"Max: {field_meta.max_value}")
        if field_meta.choices:
            constraints.append(f"Choices: {', '.join(str(c) for c in field_meta.choices)}")
        if constraints:
            embed.add_field(name="Constraints", value=" • ".join(constraints), inline=False)

        await ctx.send(embed=embed)

    @guildconfig.command(name="set", help="Set a guild-specific configuration value")
    async def set_setting(self, ctx, setting: str, *, value: str):
        """Set a guild-specific configuration override."""
        cog_name, field_name, field_meta, error = self._split_setting(setting)
        if error:
            return await UserFeedback.error(ctx, error)

        # Strings are parsed to the field type and validated by the manager
        success, error = self.bot.config_manager.set(cog_name, field_name, value, ctx.guild.id)
        if not success:
            return await UserFeedback.error(ctx, f"Validation failed: {error}")

        self.bot.config_manager.save()
        new_value = self.bot.config_manager.get(cog_name, field_name, ctx.guild.id)

        await UserFeedback.success(
            ctx,
            f"Set `{setting}` to `{new_value}` for this guild!\n"
            f"This setting will now override the global default."
        )
        logger.info(f"[Guild {ctx.guild.id}:{ctx.guild.name}] Admin {ctx.author} set {setting} = {new_value}")

    @guildconfig.command(name="reset", help="Reset a guild setting to global default")
    async def reset_setting(self, ctx, *, setting: str):
        """Reset a guild setting to use the global default."""
        cog_name, field_name, field_meta, error = self._split_setting(setting)
        if error:
            return await UserFeedback.error(ctx, error)

        old_value = self.bot.config_manager.get(cog_name, field_name, ctx.guild.id)
        if not self.bot.config_manager.reset(cog_name, field_name, ctx.guild.id):
            return await UserFeedback.error(ctx, f"Setting `{setting}` is not overridden for this guild")

        self.bot.config_manager.save()
        new_value = self.bot.config_manager.get(cog_name, field_name, ctx.guild.id)

        await UserFeedback.success(
            ctx,
            f"Reset `{setting}` to global default!\n"
            f"Old value: `{old_value}` → New value: `{new_value}`"
        )
        logger.info(f"[Guild {ctx.guild.id}:{ctx.guild.name}] Admin {ctx.author} reset {setting} to global default")

    @commands.command(name="afkchannel", help="Show or set the AFK voice channel: afkchannel [#channel|clear]")
    async def afk_channel(self, ctx, channel: Optional[Union[discord.VoiceChannel, str]] = None):
        """Show, set or clear the voice channel counted as AFK."""
        tracker = self.bot.get_cog("ActivityTracker")
        if tracker is None:
            return await UserFeedback.error(ctx, "Activity tracking is not loaded!")

        store = tracker.guild_settings

        if channel is None:
            settings = await store.get(ctx.guild.id)
            current = ctx.guild.get_channel(settings.afk_channel_id) if settings and settings.afk_channel_id else None
            if current is None:
                return await UserFeedback.info(
                    ctx,
                    "No AFK channel configured. Voice channels with \"afk\" in their name count as AFK."
                )
            return await UserFeedback.info(ctx, f"AFK channel: {current.mention}")

        if isinstance(channel, str):
            if channel.lower() != "clear":
                raise UserInputError(f"⚠️ Voice channel not found: `{channel}`")
            await store.set_afk_channel(ctx.guild.id, None, ctx.guild.name)
            logger.info(f"[Guild {ctx.guild.id}:{ctx.guild.name}] Admin {ctx.author} cleared the AFK channel")
            return await UserFeedback.success(
                ctx,
                "AFK channel cleared. Voice channels with \"afk\" in their name still count as AFK."
            )

        await store.set_afk_channel(ctx.guild.id, channel.id, ctx.guild.name)
        logger.info(f"[Guild {ctx.guild.id}:{ctx.guild.name}] Admin {ctx.author} set AFK channel to {channel.name}")
        await UserFeedback.success(ctx, f"AFK channel set to {channel.mention}. Applies from members' next voice change.")


async def setup(bot):
    try:
        await bot.add_cog(GuildConfigCog(bot))
        logger.info(f"{__name__} loaded successfully")
    except Exception as e:
        logger.error(f"Failed to load cog {__name__}: {e}")
