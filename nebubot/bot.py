from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import discord
import discord.abc
from discord.ext import commands

from .config import BotConfig, load_config
from .counting import handle_count, reset_count, set_counting_channel
from .economy import (
    CooldownActive,
    EconomyError,
    balance_of,
    claim_daily,
    coin_flip,
    format_remaining,
    work,
)
from .games.errors import AlreadyActive, InvalidOpponent
from .games.lifecycle import player_label
from .games.negotiator import Challenge, ChallengeNegotiator, ChallengeOutcome
from .games.registry import ActiveGameRegistry
from .invites import attribute_join, store_cache
from .leveling import add_xp, apply_level_roles, leaderboard, xp_needed
from .models import close_db, counting_channel_id, get_member_stats, init_db
from .server_stats import (
    refresh_stats_channels,
    set_dob_text,
    set_goal_value,
    set_stats_channels,
)
from .utility import custom_embed, latency_text, serverinfo_embed, userinfo_embed
from .verification import passphrase_matches, verify_member
from .views import (
    VERIFY_MESSAGES,
    ChallengeView,
    GameView,
    VerifyView,
    flush_final_edits,
)

# Default to INFO until the configured level is applied at startup
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s"
)
LOGGER = logging.getLogger(__name__)


def member_is_admin(member: Any) -> bool:
    perms = getattr(member, "guild_permissions", None)
    if perms is None:
        return False
    return bool(perms.administrator or perms.manage_guild)


class NebuBot(commands.Bot):
    def __init__(self, config: BotConfig):
        intents = discord.Intents.default()
        intents.members = True
        intents.guilds = True
        intents.invites = True
        intents.message_content = True
        super().__init__(command_prefix=config.command_prefix, intents=intents)
        self.config = config
        self.registry = ActiveGameRegistry()
        self.negotiator = ChallengeNegotiator(
            self.registry,
            challenge_timeout=config.challenge_timeout_seconds,
            idle_timeouts=config.idle_timeouts,
        )
        init_db(config.database_path)
        self.stats_task: asyncio.Task[None] | None = None

    async def setup_hook(self) -> None:
        self.add_view(VerifyView(self.config.verified_role_id))
        self.stats_task = self.loop.create_task(self._stats_loop())

    async def close(self) -> None:
        if self.stats_task:
            self.stats_task.cancel()
            try:
                await self.stats_task
            except asyncio.CancelledError:
                pass
        expired = self.negotiator.expire_all()
        abandoned = self.registry.clear()
        if expired or abandoned:
            LOGGER.info(
                "Shutdown dropped %s challenge(s) and %s game(s)", expired, abandoned
            )
        await flush_final_edits()
        close_db()
        await super().close()

    async def _stats_loop(self):
        await self.wait_until_ready()
        interval = self.config.stats_refresh_minutes * 60
        while not self.is_closed():
            for guild in list(self.guilds):
                try:
                    await refresh_stats_channels(guild)
                except Exception as exc:
                    LOGGER.exception(
                        "Stats refresh failed for guild %s: %s", guild.id, exc
                    )
            await asyncio.sleep(interval)

    async def on_ready(self):
        LOGGER.info("Bot ready as %s", self.user)
        for guild in self.guilds:
            await self.refresh_invite_cache(guild)

    async def refresh_invite_cache(self, guild: discord.Guild) -> None:
        try:
            invites = await guild.invites()
        except discord.HTTPException as exc:
            LOGGER.warning("Failed to fetch invites for guild %s: %s", guild.id, exc)
            return
        count = store_cache(guild.id, invites)
        LOGGER.debug("Cached %s invite(s) for guild %s", count, guild.id)

    async def on_invite_create(self, invite: discord.Invite):
        if isinstance(invite.guild, discord.Guild):
            await self.refresh_invite_cache(invite.guild)

    async def on_invite_delete(self, invite: discord.Invite):
        if isinstance(invite.guild, discord.Guild):
            await self.refresh_invite_cache(invite.guild)

    async def on_member_join(self, member: discord.Member):
        LOGGER.info(
            "Member joined guild %s: %s", member.guild.id, player_label(member)
        )
        await self._welcome(member)
        try:
            invites = await member.guild.invites()
        except discord.HTTPException as exc:
            LOGGER.warning(
                "Failed to fetch invites for guild %s: %s", member.guild.id, exc
            )
        else:
            attribute_join(member.guild.id, invites)
        await refresh_stats_channels(member.guild)

    async def on_member_remove(self, member: discord.Member):
        LOGGER.info("Member left guild %s: %s", member.guild.id, player_label(member))
        await refresh_stats_channels(member.guild)

    async def _welcome(self, member: discord.Member) -> None:
        channel_id = self.config.welcome_channel_id
        channel = member.guild.get_channel(channel_id) if channel_id else None
        if isinstance(channel, discord.abc.Messageable):
            try:
                await channel.send(f"👋 Welcome to the server, {member.mention}!")
            except discord.HTTPException as exc:
                LOGGER.warning("Failed sending welcome for %s: %s", member.id, exc)
        verify_hint = (
            f" Please head to <#{self.config.verify_channel_id}> to get verified."
            if self.config.verify_channel_id
            else ""
        )
        try:
            await member.send(f"Welcome to **{member.guild.name}**!{verify_hint}")
        except discord.HTTPException as exc:
            LOGGER.debug("Could not DM %s: %s", member.id, exc)

    async def on_message(self, message: discord.Message):
        if message.author.bot or message.guild is None:
            return
        if counting_channel_id(message.guild.id) == message.channel.id:
            await self.handle_counting(message)
        if (
            self.config.verify_channel_id
            and message.channel.id == self.config.verify_channel_id
            and passphrase_matches(message.content, self.config.verification_passphrase)
        ):
            await self.handle_passphrase(message)
            return
        if not message.content.startswith(self.config.command_prefix):
            return
        ctx = await self.get_context(message)
        if ctx.command is not None:
            await self.award_xp(message.author, message.channel)
        await self.invoke(ctx)

    async def handle_counting(self, message: discord.Message) -> None:
        result = handle_count(message.guild.id, message.author.id, message.content)
        if result is None:
            return
        if result.accepted:
            await _react(message, "✅")
            return
        await _react(message, "❌")
        try:
            await message.reply(
                f"❌ Oops! {result.reason} {message.author.mention} ruined it at "
                f"{result.expected}. The next number is 1 ❌"
            )
        except discord.HTTPException as exc:
            LOGGER.warning(
                "Failed replying to count in %s: %s", message.channel.id, exc
            )

    async def handle_passphrase(self, message: discord.Message) -> None:
        role_id = self.config.verified_role_id
        role = message.guild.get_role(role_id) if role_id else None
        result = await verify_member(message.author, role)
        try:
            await message.reply(VERIFY_MESSAGES[result], delete_after=10)
        except discord.HTTPException as exc:
            LOGGER.warning("Failed replying to verification: %s", exc)

    async def award_xp(self, member: Any, channel: Any) -> None:
        gain = add_xp(member.id, self.config.xp_per_command)
        if not gain.leveled_up:
            return
        try:
            await channel.send(
                f"🎉 {member.mention} leveled up to **level {gain.level}**!"
            )
        except discord.HTTPException as exc:
            LOGGER.warning("Failed announcing level up for %s: %s", member.id, exc)
        if self.config.level_roles and hasattr(member, "add_roles"):
            await apply_level_roles(member, self.config.level_roles, gain.level)


async def _react(message: Any, emoji: str) -> None:
    try:
        await message.add_reaction(emoji)
    except discord.HTTPException as exc:
        LOGGER.debug("Failed reacting to %s: %s", message.id, exc)


async def run_challenge(
    bot: Any, ctx: Any, opponent: Any, variant: str
) -> Optional[Challenge]:
    prompt: Optional[ChallengeView] = None

    async def present(challenge: Challenge) -> None:
        nonlocal prompt
        prompt = ChallengeView(challenge)
        prompt.message = await ctx.send(
            f"{opponent.mention}, you have been challenged to "
            f"**{challenge.rules.title}** by {ctx.author.mention}. Do you accept?",
            view=prompt,
        )

    try:
        challenge = await bot.negotiator.propose_challenge(
            ctx.channel.id, ctx.author, opponent, variant, present=present
        )
    except InvalidOpponent as exc:
        await ctx.reply(
            f"{exc} Usage: `{bot.config.command_prefix}{variant} @user`"
        )
        return None
    except AlreadyActive as exc:
        await ctx.reply(str(exc))
        return None

    if challenge.outcome is ChallengeOutcome.EXPIRED and prompt is not None:
        prompt.stop()
        if prompt.message is not None:
            try:
                await prompt.message.edit(
                    content="Challenge expired due to inactivity.", view=None
                )
            except discord.HTTPException as exc:
                LOGGER.warning("Failed expiring challenge message: %s", exc)
    elif challenge.outcome is ChallengeOutcome.ACCEPTED and challenge.game:
        board = GameView(challenge.game)
        try:
            board.message = await ctx.send(embed=board.embed(), view=board)
        except discord.HTTPException as exc:
            LOGGER.warning(
                "Failed posting board in channel %s: %s", ctx.channel.id, exc
            )
            challenge.game.abandon()
    return challenge


async def setup_commands(bot: NebuBot):
    @bot.event
    async def on_command_error(ctx: commands.Context, error: commands.CommandError):
        if isinstance(error, commands.CommandNotFound):
            return
        if isinstance(error, (commands.BadArgument, commands.MissingRequiredArgument)):
            usage = f"{bot.config.command_prefix}{ctx.command.qualified_name}"
            if ctx.command.signature:
                usage = f"{usage} {ctx.command.signature}"
            await ctx.reply(f"{error} Usage: `{usage}`")
            return
        if isinstance(error, commands.CheckFailure):
            await ctx.reply("You do not have permission to use this command.")
            return
        LOGGER.exception("Command error: %s", error)
        try:
            await ctx.reply(f"Command failed: {error}")
        except discord.HTTPException as exc:
            LOGGER.warning("Failed sending error response for command: %s", exc)

    def admin_only():
        async def predicate(ctx: commands.Context) -> bool:
            return member_is_admin(ctx.author)

        return commands.check(predicate)

    @bot.command(
        name="tictactoe",
        aliases=["ttt"],
        help="Play Tic Tac Toe with a friend. Usage: $tictactoe @user",
    )
    async def tictactoe(ctx: commands.Context, opponent: discord.Member = None):
        await run_challenge(bot, ctx, opponent, "tictactoe")

    @bot.command(
        name="connect4",
        aliases=["c4"],
        help="Play Connect 4 with a friend. Usage: $connect4 @user",
    )
    async def connect4(ctx: commands.Context, opponent: discord.Member = None):
        await run_challenge(bot, ctx, opponent, "connect4")

    @bot.command(name="stopgame", help="Stop the game running in this channel.")
    async def stopgame(ctx: commands.Context):
        game = bot.registry.get(ctx.channel.id)
        if game is None:
            await ctx.reply("There's no game in progress in this channel.")
            return
        if not game.is_participant(ctx.author) and not member_is_admin(ctx.author):
            await ctx.reply("Only the players or an admin can stop this game.")
            return
        game.abandon()
        LOGGER.info(
            "Game in channel %s stopped by %s", ctx.channel.id, player_label(ctx.author)
        )
        await ctx.reply("🛑 The game has been stopped.")

    @bot.command(name="balance", help="Check your or another user's coin balance.")
    async def balance(ctx: commands.Context, user: discord.Member = None):
        target = user or ctx.author
        embed = discord.Embed(
            title=f"{target.display_name}'s Wallet",
            description=f"They have **{balance_of(target.id)}** coins.",
            color=0xF1C40F,
        )
        await ctx.send(embed=embed)

    @bot.command(name="daily", help="Claim your daily coin reward.")
    async def daily(ctx: commands.Context):
        try:
            payout = claim_daily(ctx.author.id)
        except CooldownActive as exc:
            await ctx.reply(
                "You've already claimed your daily reward. "
                f"Come back in **{format_remaining(exc.remaining)}**."
            )
            return
        await ctx.reply(
            "🎉 You claimed your daily reward and received "
            f"**{payout.amount}** coins!"
        )

    @bot.command(name="work", help="Work to earn some extra coins.")
    async def work_command(ctx: commands.Context):
        try:
            payout = work(ctx.author.id)
        except CooldownActive as exc:
            await ctx.reply(
                "You're tired from working. "
                f"Take a break for **{format_remaining(exc.remaining)}**."
            )
            return
        await ctx.reply(f"💼 {payout.flavour} **{payout.amount}** coins!")

    @bot.command(
        name="coin",
        aliases=["gamble"],
        help="Flip a coin and bet on the outcome. Usage: $coin <heads|tails> <amount>",
    )
    async def coin(ctx: commands.Context, guess: str = "", amount: str = ""):
        try:
            flip = coin_flip(ctx.author.id, guess, amount)
        except EconomyError as exc:
            await ctx.reply(str(exc))
            return
        if flip.won:
            text = (
                f"🎉 **You won!** The coin landed on **{flip.result}**. You gained "
                f"{flip.amount} coins and now have **{flip.balance}**."
            )
        else:
            text = (
                f"💔 **You lost!** The coin landed on **{flip.result}**. You lost "
                f"{flip.amount} coins and now have **{flip.balance}**."
            )
        await ctx.reply(text)

    @bot.command(name="invites", help="Shows how many people you have invited.")
    async def invites(ctx: commands.Context):
        stats = get_member_stats(ctx.author.id)
        await ctx.reply(f"You have **{stats.invites}** successful invite(s).")

    @bot.command(name="stats", help="Shows your current level, XP, and invites.")
    async def stats(ctx: commands.Context, user: discord.Member = None):
        target = user or ctx.author
        record = get_member_stats(target.id)
        embed = discord.Embed(title=f"{target.display_name}'s Stats", color=0x9B59B6)
        embed.add_field(name="Level", value=str(record.level), inline=True)
        embed.add_field(
            name="XP", value=f"{record.xp} / {xp_needed(record.level)}", inline=True
        )
        embed.add_field(name="Invites", value=str(record.invites), inline=True)
        await ctx.send(embed=embed)

    @bot.command(name="leaderboard", help="Displays the top 10 users by level.")
    async def leaderboard_command(ctx: commands.Context):
        rows = leaderboard()
        if not rows:
            await ctx.reply("No leaderboard data yet.")
            return
        lines = [
            f"**{i}.** <@{row.user_id}> - Level {row.level} ({row.xp} XP)"
            for i, row in enumerate(rows, start=1)
        ]
        embed = discord.Embed(
            title="🏆 Leaderboard", description="\n".join(lines), color=0xF1C40F
        )
        await ctx.send(embed=embed)

    @bot.command(name="countingreset", help="Resets the counting channel to 1.")
    @admin_only()
    async def countingreset(ctx: commands.Context):
        reset_count(ctx.guild.id)
        LOGGER.info(
            "Counting reset in guild %s by %s", ctx.guild.id, player_label(ctx.author)
        )
        await ctx.reply("✅ Counting has been successfully reset to 1.")

    @bot.command(name="setcounting", help="Sets the channel for counting.")
    @admin_only()
    async def setcounting(ctx: commands.Context, channel: discord.TextChannel = None):
        if channel is None:
            await ctx.reply(
                "Please mention a channel, e.g., "
                f"`{bot.config.command_prefix}setcounting #counting`"
            )
            return
        set_counting_channel(ctx.guild.id, channel.id)
        await ctx.reply(f"✅ Counting channel has been set to {channel.mention}.")

    @bot.command(name="verifypanel", help="Post the verification button here.")
    @admin_only()
    async def verifypanel(ctx: commands.Context):
        embed = discord.Embed(
            title="✅ Verification",
            description=(
                "Click **Verify** below or type the passphrase: "
                f"`{bot.config.verification_passphrase}`"
            ),
            color=0x2ECC71,
        )
        await ctx.send(embed=embed, view=VerifyView(bot.config.verified_role_id))

    @bot.command(name="verificationinfo", help="Explains how verification works.")
    async def verificationinfo(ctx: commands.Context):
        where = (
            f"<#{bot.config.verify_channel_id}>"
            if bot.config.verify_channel_id
            else "the verify channel"
        )
        embed = discord.Embed(
            title="✅ Verification System",
            description=(
                f'To get verified, go to {where} and either click the "Verify" '
                "button or type the passphrase: "
                f"`{bot.config.verification_passphrase}`"
            ),
            color=0x2ECC71,
        )
        await ctx.send(embed=embed)

    @bot.command(name="countinginfo", help="Explains how the counting channel works.")
    async def countinginfo(ctx: commands.Context):
        embed = discord.Embed(
            title="🔢 Counting System",
            description=(
                "In the counting channel, the bot will react with ✅ if you type "
                "the correct next number and you didn't count last. If you make "
                "a mistake, the bot will reply with the correct number and the "
                "count starts again at 1. Your message will not be deleted."
            ),
            color=0x3498DB,
        )
        await ctx.send(embed=embed)

    @bot.command(name="ping", help="Checks the bot's latency to the Discord API.")
    async def ping(ctx: commands.Context):
        age = discord.utils.utcnow() - ctx.message.created_at
        await ctx.reply(latency_text(int(age.total_seconds() * 1000), bot.latency))

    @bot.command(name="userinfo", help="Displays information about you or a user.")
    async def userinfo(ctx: commands.Context, user: discord.Member = None):
        await ctx.reply(embed=userinfo_embed(user or ctx.author))

    @bot.command(name="serverinfo", help="Displays information about the server.")
    async def serverinfo(ctx: commands.Context):
        await ctx.reply(embed=serverinfo_embed(ctx.guild))

    @bot.command(
        name="embed",
        help="Create a simple embed. Usage: $embed Title | Description",
    )
    async def embed_command(ctx: commands.Context, *, text: str = ""):
        try:
            embed = custom_embed(text)
        except ValueError as exc:
            await ctx.reply(str(exc))
            return
        await ctx.channel.send(embed=embed)
        try:
            await ctx.message.delete()
        except discord.HTTPException as exc:
            LOGGER.debug("Could not delete embed request %s: %s", ctx.message.id, exc)

    @bot.command(
        name="setstats",
        help="Sets the voice channels used for server stats.",
    )
    @admin_only()
    async def setstats(
        ctx: commands.Context,
        humans: discord.VoiceChannel = None,
        dob: discord.VoiceChannel = None,
        goal: discord.VoiceChannel = None,
    ):
        if humans is None or dob is None or goal is None:
            await ctx.reply(
                "Please mention three voice channels, e.g., "
                f"`{bot.config.command_prefix}setstats #humans #dob #goal`"
            )
            return
        set_stats_channels(ctx.guild.id, humans.id, dob.id, goal.id)
        renamed = await refresh_stats_channels(ctx.guild)
        await ctx.reply(f"✅ Server stats channels set ({renamed} updated).")

    @bot.command(name="setdob", help="Sets the date shown in the DOB stats channel.")
    @admin_only()
    async def setdob(ctx: commands.Context, *, text: str = ""):
        try:
            set_dob_text(ctx.guild.id, text)
        except ValueError as exc:
            await ctx.reply(str(exc))
            return
        await refresh_stats_channels(ctx.guild)
        await ctx.reply(f"✅ DOB set to **{text.strip()}**.")

    @bot.command(name="setgoal", help="Sets the member goal stats channel.")
    @admin_only()
    async def setgoal(ctx: commands.Context, goal: int = 0):
        try:
            set_goal_value(ctx.guild.id, goal)
        except ValueError as exc:
            await ctx.reply(str(exc))
            return
        await refresh_stats_channels(ctx.guild)
        await ctx.reply(f"✅ Member goal set to **{goal}**.")


async def main():
    bot_config = load_config()
    logging.getLogger().setLevel(bot_config.log_level)
    LOGGER.setLevel(bot_config.log_level)
    bot = NebuBot(bot_config)
    await setup_commands(bot)
    await bot.start(bot_config.token)


if __name__ == "__main__":
    asyncio.run(main())
