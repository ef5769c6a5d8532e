import discord
from discord.ext import commands
import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

from .attempt_store import AttemptStore, JsonAttemptStore
from .config_manager import ConfigManager
from .data_manager import DataManager
from .errors import StorageInitError
from .models import AttemptRecord, Question
from .quiz_controller import QuizController
from .quiz_engine import SessionEvent
from .session import SessionPhase, SessionState

logger = logging.getLogger(__name__)

MEDALS = ["🥇", "🥈", "🥉"]
OPTION_LETTERS = "ABCDEFGHIJ"


def resolve_choice(question: Optional[Question], value: str) -> str:
    """Map a letter ('b') or position ('2') to the option text for multiple-choice questions."""
    if question is None or not question.is_multiple_choice:
        return value

    text = value.strip()
    if text in question.options:
        return text
    if len(text) == 1 and text.upper() in OPTION_LETTERS[:len(question.options)]:
        return question.options[OPTION_LETTERS.index(text.upper())]
    if text.isdigit() and 1 <= int(text) <= len(question.options):
        return question.options[int(text) - 1]
    return text


def build_question_embed(state: SessionState) -> discord.Embed:
    """Render the current question of a session."""
    question = state.current_question
    embed = discord.Embed(
        title=f"🎯 Question {state.current_index + 1}/{state.question_count}",
        description=question.prompt,
        color=0x00ff00
    )

    if question.is_multiple_choice:
        lines = []
        for letter, option in zip(OPTION_LETTERS, question.options):
            if option in state.eliminated_options:
                lines.append(f"~~{letter}. {option}~~")
            else:
                lines.append(f"**{letter}.** {option}")
        embed.add_field(name="Options", value="\n".join(lines), inline=False)
    else:
        embed.add_field(name="Answer", value="Enter a whole number with `/answer`", inline=False)

    timer_text = "⏱️ FROZEN" if state.timer_frozen else f"⏳ {state.remaining_seconds}s"
    embed.add_field(name="Time Remaining", value=timer_text, inline=True)
    embed.add_field(name="Score", value=str(state.score), inline=True)

    if state.hint_shown:
        embed.add_field(name="🧙 Hint", value=f"The answer is **{question.correct_answer}**", inline=False)

    if state.character is not None:
        power_status = "used" if state.power_used else "ready - use `/power`"
        embed.set_footer(text=f"{state.participant_name} ({state.character.label}) | {state.character.power_name}: {power_status}")
    return embed


def build_reveal_embed(state: SessionState) -> discord.Embed:
    """Render the evaluated answer of the current question."""
    question = state.current_question
    if state.wrong_answer is not None:
        embed = discord.Embed(
            title="❌ Wrong answer",
            description=f"You answered **{state.wrong_answer}**.\nThe correct answer was **{question.correct_answer}**.",
            color=0xff0000
        )
    else:
        embed = discord.Embed(
            title="✅ Correct!",
            description=f"**{question.correct_answer}** is right.",
            color=0x00ff00
        )
    embed.set_footer(text=f"Score: {state.score}/{state.question_count}")
    return embed


def build_completion_embed(state: SessionState, saved: bool = True, save_error: Optional[str] = None) -> discord.Embed:
    """Render the final score of a completed session."""
    embed = discord.Embed(
        title="🏁 Quiz Complete!",
        description=f"**{state.participant_name}** scored **{state.score} / {state.question_count}**",
        color=0xffd700 if state.score >= 1 else 0x6699ff
    )
    if save_error:
        embed.add_field(name="⚠️ Not Saved", value="Your score could not be saved to the leaderboard.", inline=False)
    elif saved:
        embed.add_field(name="🏆 Leaderboard", value="Your score has been saved. Use `/leaderboard` to see rankings.", inline=False)
    return embed


def build_leaderboard_embed(entries: List[AttemptRecord]) -> discord.Embed:
    """Render ranked attempts."""
    embed = discord.Embed(
        title="🏆 Leaderboard",
        description="Top players of all time!",
        color=0x10b981
    )
    if not entries:
        embed.add_field(name="No scores yet", value="Be the first to set a record!", inline=False)
        return embed

    lines = []
    for index, attempt in enumerate(entries):
        medal = f"{MEDALS[index]} " if index < len(MEDALS) else ""
        lines.append(f"{medal}{index + 1}. {attempt.participant_name} ({attempt.character_label}) "
                     f"- {attempt.score} / {attempt.total_questions}")
    embed.add_field(name="Rankings", value="\n".join(lines), inline=False)
    return embed


def build_characters_embed(characters: List[Dict[str, str]]) -> discord.Embed:
    embed = discord.Embed(
        title="🎭 Choose your character",
        description="Each character has one special power, usable once per quiz.",
        color=0x8b5cf6
    )
    for character in characters:
        embed.add_field(
            name=character['label'],
            value=f"**{character['power']}**: {character['description']}",
            inline=False
        )
    return embed


class QuizBot(commands.Bot):
    """Discord bot front-end for QuizQuest"""

    def __init__(self, config=None):
        intents = discord.Intents.none()
        intents.guilds = True  # Required for slash commands

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,  # Fallback prefix, mainly using slash commands
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}

        self.data_manager: Optional[DataManager] = None
        self.config_manager: Optional[ConfigManager] = None
        self.store: Optional[AttemptStore] = None
        self.quiz_controller: Optional[QuizController] = None

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")

            self.config_manager = ConfigManager()
            for message in self.config_manager.apply_config(self.app_config):
                logger.warning(f"Configuration value rejected: {message}")
            validation = self.config_manager.validate_settings()
            for issue in validation["issues"]:
                logger.warning(f"Configuration issue: {issue}")

            self.data_manager = DataManager(self.config_manager.get_question_bank_path())
            self.data_manager.load_question_bank()

            self.store = await self.open_store()
            self.quiz_controller = QuizController(self.data_manager, self.config_manager, self.store)

            await self.setup_commands()
            logger.info("Bot setup completed successfully")

        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    async def open_store(self) -> AttemptStore:
        """Open the JSON attempt store, falling back to memory if it is unusable."""
        store = JsonAttemptStore(self.config_manager.get_store_path(), retention=self.config_manager.get_retention())
        try:
            await store.open()
            return store
        except StorageInitError as e:
            logger.error(f"Attempt store unavailable, scores will not survive a restart: {e}")
            fallback = AttemptStore(retention=self.config_manager.get_retention())
            await fallback.open()
            return fallback

    async def setup_commands(self):
        """Register all slash commands"""

        @self.tree.command(name="help", description="Display available commands and their descriptions")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="characters", description="List the playable characters and their powers")
        async def characters_command(interaction: discord.Interaction):
            await self.handle_characters(interaction)

        @self.tree.command(name="start", description="Start a quiz as a character")
        async def start_command(interaction: discord.Interaction, name: str, character: str):
            await self.handle_start(interaction, name, character)

        @self.tree.command(name="answer", description="Answer the current question (option letter or number)")
        async def answer_command(interaction: discord.Interaction, value: str):
            await self.handle_answer(interaction, value)

        @self.tree.command(name="next", description="Check your answer or move to the next question")
        async def next_command(interaction: discord.Interaction):
            await self.handle_action(interaction, "next")

        @self.tree.command(name="skip", description="Skip the current question")
        async def skip_command(interaction: discord.Interaction):
            await self.handle_action(interaction, "skip")

        @self.tree.command(name="power", description="Use your character's special power")
        async def power_command(interaction: discord.Interaction):
            await self.handle_action(interaction, "power")

        @self.tree.command(name="status", description="Show current quiz status and progress")
        async def status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        @self.tree.command(name="stop", description="Stop the current quiz session")
        async def stop_command(interaction: discord.Interaction):
            await self.handle_stop(interaction)

        @self.tree.command(name="leaderboard", description="Show the top scores")
        async def leaderboard_command(interaction: discord.Interaction):
            await self.handle_leaderboard(interaction)

        @self.tree.command(name="prune", description="Remove attempts older than the retention window")
        async def prune_command(interaction: discord.Interaction):
            await self.handle_prune(interaction)

        logger.info("Slash commands registered successfully")

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot is ready! Logged in as {self.user}")
        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")

    async def close(self):
        if self.quiz_controller is not None:
            await self.quiz_controller.shutdown()
        if self.store is not None:
            await self.store.close()
        await super().close()

    def make_session_listener(self, channel: discord.abc.Messageable, channel_id: int):
        """Build the engine listener that posts transitions to a channel."""

        async def on_session_event(event: SessionEvent, state: SessionState):
            if event in (SessionEvent.STARTED, SessionEvent.ADVANCED):
                await channel.send(embed=build_question_embed(state))
            elif event is SessionEvent.TIMED_OUT:
                await channel.send("⏰ Time's up! Moving to the next question...")
            elif event is SessionEvent.COMPLETED:
                engine = self.quiz_controller.get_engine(channel_id)
                saved = engine is not None and engine.saved_record is not None
                save_error = engine.save_error if engine is not None else None
                await channel.send(embed=build_completion_embed(state, saved, save_error))

        return on_session_event

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        embed = discord.Embed(
            title="📖 QuizQuest Commands",
            description="Answer shuffled questions against the clock. Each character has one power per quiz.",
            color=0x6699ff
        )
        embed.add_field(
            name="🎮 Playing",
            value=(
                "`/characters` - List characters and powers\n"
                "`/start name character` - Start a quiz\n"
                "`/answer value` - Answer (letter, number or text)\n"
                "`/next` - Check your answer or continue\n"
                "`/skip` - Skip the current question\n"
                "`/power` - Use your special power\n"
                "`/status` - Show progress\n"
                "`/stop` - Stop the quiz"
            ),
            inline=False
        )
        embed.add_field(
            name="🏆 Scores",
            value="`/leaderboard` - Top scores\n`/prune` - Remove old attempts",
            inline=False
        )
        embed.add_field(name="⚙️ Settings", value=self.config_manager.get_settings_summary(), inline=False)
        await interaction.response.send_message(embed=embed, ephemeral=True)

    async def handle_characters(self, interaction: discord.Interaction):
        embed = build_characters_embed(self.quiz_controller.get_characters())
        await interaction.response.send_message(embed=embed)

    async def handle_start(self, interaction: discord.Interaction, name: str, character: str):
        """Handle /start command"""
        try:
            channel_id = interaction.channel_id
            # Acknowledge first; the listener posts the first question
            await interaction.response.defer()

            result = await self.quiz_controller.start_quiz(
                channel_id, name, character,
                listener=self.make_session_listener(interaction.channel, channel_id)
            )
            if not result['success']:
                await self.send_error_response(interaction, result['user_message'], "❌ Quiz Start Failed")
                return

            session_info = result['session_info']
            embed = discord.Embed(
                title="🎯 Quiz Started!",
                description=f"**{session_info['participant_name']}** plays as {session_info['character']}",
                color=0x00ff00
            )
            embed.add_field(
                name="📊 Quiz Details",
                value=(
                    f"Questions: {session_info['total_questions']}\n"
                    f"Timer: {session_info['remaining_seconds']} seconds per question"
                ),
                inline=False
            )
            if self.data_manager.fallback_bank_active:
                embed.add_field(
                    name="⚠️ Using Built-in Questions",
                    value="The question bank could not be loaded.",
                    inline=False
                )
            await interaction.followup.send(embed=embed)

        except discord.HTTPException as e:
            logger.error(f"Discord API error in start command: {e}")
        except Exception as e:
            logger.error(f"Error in start command: {e}")
            await self.send_error_response(interaction, "Failed to start quiz", "❌ Quiz Start Error")

    async def handle_answer(self, interaction: discord.Interaction, value: str):
        """Handle /answer command"""
        channel_id = interaction.channel_id
        state = self.quiz_controller.get_session(channel_id)
        question = state.current_question if state else None
        result = await self.quiz_controller.answer(channel_id, resolve_choice(question, value))
        await self.send_action_result(interaction, result)

    async def handle_action(self, interaction: discord.Interaction, action: str):
        """Handle /next, /skip and /power commands"""
        channel_id = interaction.channel_id
        operations = {
            'next': self.quiz_controller.next_question,
            'skip': self.quiz_controller.skip_question,
            'power': self.quiz_controller.use_power,
        }
        result = await operations[action](channel_id)
        await self.send_action_result(interaction, result)

    async def send_action_result(self, interaction: discord.Interaction, result: Dict[str, Any]):
        """Reply to an engine action; reveals are shown publicly, warnings privately."""
        try:
            state = result.get('state')
            if result['success'] and state is not None and state.phase is SessionPhase.REVEALED:
                await interaction.response.send_message(embed=build_reveal_embed(state))
            elif result['success']:
                await interaction.response.send_message(result['user_message'], ephemeral=True)
            else:
                await self.send_warning_response(interaction, result['user_message'])
        except discord.HTTPException as e:
            logger.error(f"Failed to reply to action: {e}")

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        state = self.quiz_controller.get_session(interaction.channel_id)
        if state is None:
            await self.send_info_response(
                interaction, "There is no quiz in this channel. Use `/start` to begin.", "ℹ️ No Active Quiz"
            )
            return

        if state.completed:
            engine = self.quiz_controller.get_engine(interaction.channel_id)
            saved = engine is not None and engine.saved_record is not None
            save_error = engine.save_error if engine is not None else None
            embed = build_completion_embed(state, saved, save_error)
        else:
            embed = build_question_embed(state)
        await interaction.response.send_message(embed=embed, ephemeral=True)

    async def handle_stop(self, interaction: discord.Interaction):
        """Handle /stop command"""
        result = await self.quiz_controller.stop_quiz(interaction.channel_id)
        if result['success']:
            await interaction.response.send_message(result['user_message'])
        else:
            await self.send_warning_response(interaction, result['user_message'])

    async def handle_leaderboard(self, interaction: discord.Interaction):
        """Handle /leaderboard command"""
        result = await self.quiz_controller.get_leaderboard()
        if not result['success']:
            await self.send_error_response(interaction, result['user_message'], "❌ Leaderboard Error")
            return
        await interaction.response.send_message(embed=build_leaderboard_embed(result['entries']))

    async def handle_prune(self, interaction: discord.Interaction):
        result = await self.quiz_controller.prune_attempts()
        if result['success']:
            await self.send_info_response(interaction, result['user_message'], "🧹 Attempts Pruned")
        else:
            await self.send_error_response(interaction, result['user_message'])

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send formatted error response to user"""
        await self._send_embed(interaction, message, title, 0xff0000)

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        """Send formatted info response to user"""
        await self._send_embed(interaction, message, title, 0x6699ff)

    async def send_warning_response(self, interaction: discord.Interaction, message: str, title: str = "⚠️ Warning"):
        """Send formatted warning response to user"""
        await self._send_embed(interaction, message, title, 0xffaa00)

    async def _send_embed(self, interaction: discord.Interaction, message: str, title: str, color: int):
        try:
            embed = discord.Embed(title=title, description=message, color=color, timestamp=datetime.now())
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error(f"Failed to send response to user: {title}")


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = QuizBot(config)

    try:
        logger.info("Starting QuizQuest bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
