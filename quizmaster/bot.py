import asyncio
import logging
import os
from typing import Optional

import discord
from discord.ext import commands

from .config_manager import ConfigManager
from .data_manager import DataManager
from .embeds import (
    build_question_embed,
    build_result_embed,
    build_review_embed,
    build_status_embed,
)
from .models import FinishResult, Phase
from .quiz_controller import ConfigurationError, QuizController
from .quiz_engine import AsyncioScheduler
from .score_store import JsonHighScoreStore

logger = logging.getLogger(__name__)


class QuizBot(commands.Bot):
    """Discord bot that runs a single timed multiple-choice quiz"""

    def __init__(self, config=None):
        # Minimal intents for slash commands
        intents = discord.Intents.none()
        intents.guilds = True

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}

        self.data_manager: Optional[DataManager] = None
        self.config_manager: Optional[ConfigManager] = None
        self.quiz_controller: Optional[QuizController] = None

        # Channel that receives time-up announcements for the running quiz
        self.announce_channel: Optional[discord.abc.Messageable] = None
        self._background_tasks = set()

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")

            self.config_manager = ConfigManager()
            if self.app_config:
                result = self.config_manager.apply_config(self.app_config)
                for error in result['errors']:
                    logger.warning(f"Ignoring invalid setting {error}")

            self.data_manager = DataManager(self.config_manager.get_quiz_directory())
            self.quiz_controller = QuizController(
                store=JsonHighScoreStore(self.config_manager.get_high_score_file()),
                scheduler=AsyncioScheduler(),
                settings=self.config_manager.get_quiz_settings(),
                on_finish=self._on_quiz_finished
            )

            await self.load_quiz_data()
            await self.setup_commands()

            logger.info("Bot setup completed successfully")

        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    async def setup_commands(self):
        """Register all slash commands"""

        @self.tree.command(name="quiz_help", description="Display available commands and their descriptions")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="start", description="Start (or restart) the quiz")
        async def start_command(interaction: discord.Interaction, quiz: Optional[str] = None):
            await self.handle_start(interaction, quiz)

        @self.tree.command(name="answer", description="Lock in an answer for the current question")
        async def answer_command(interaction: discord.Interaction, option: int):
            await self.handle_answer(interaction, option)

        @self.tree.command(name="next", description="Go to the next question")
        async def next_command(interaction: discord.Interaction):
            await self.handle_next(interaction)

        @self.tree.command(name="prev", description="Go to the previous question")
        async def prev_command(interaction: discord.Interaction):
            await self.handle_prev(interaction)

        @self.tree.command(name="finish", description="Finish the quiz now")
        async def finish_command(interaction: discord.Interaction):
            await self.handle_finish(interaction)

        @self.tree.command(name="review", description="Review your answers after finishing")
        async def review_command(interaction: discord.Interaction):
            await self.handle_review(interaction)

        @self.tree.command(name="status", description="Show quiz progress, time and score")
        async def status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        @self.tree.command(name="highscore", description="Show the best score so far")
        async def highscore_command(interaction: discord.Interaction):
            await self.handle_highscore(interaction)

        @self.tree.command(name="set_duration", description="Set the quiz timer for the next quiz (10-3600 seconds)")
        async def set_duration_command(interaction: discord.Interaction, seconds: int):
            await self.handle_set_duration(interaction, seconds)

        logger.info("Slash commands registered successfully")

    async def load_quiz_data(self):
        """Load quiz files from the quizzes directory"""
        loaded_quizzes = self.data_manager.load_quiz_files()
        logger.info(f"Loaded {len(loaded_quizzes)} quizzes from {self.data_manager.quiz_directory}")
        for error in self.data_manager.get_load_errors():
            logger.warning(f"Quiz loading issue: {error}")

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot is ready! Logged in as {self.user}")
        print(f"🤖 {self.user} is Ready and Online!")

        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
            print(f"⚡ Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors"""
        logger.error(f"An error occurred in event {event}", exc_info=True)

    # -- command handlers --------------------------------------------------

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /quiz_help command"""
        try:
            embed = discord.Embed(
                title="🎯 QuizMaster Commands",
                description="Take a timed multiple-choice quiz, beat your high score and review what you missed.",
                color=0x00ff00
            )
            embed.add_field(
                name="🎮 Quiz",
                value=(
                    "`/start [quiz]` - Start or restart the quiz\n"
                    "`/answer <number>` - Lock in an answer (cannot be changed)\n"
                    "`/next` / `/prev` - Move between questions\n"
                    "`/finish` - Finish the quiz now\n"
                    "`/review` - Review your answers after finishing"
                ),
                inline=False
            )
            embed.add_field(
                name="📋 Info & Settings",
                value=(
                    "`/status` - Show progress, time and score\n"
                    "`/highscore` - Show the best score so far\n"
                    "`/set_duration <seconds>` - Set the timer for the next quiz"
                ),
                inline=False
            )
            embed.add_field(
                name="⚙️ Current Settings",
                value=f"```\n{self.config_manager.get_settings_summary()}\n```",
                inline=False
            )
            quizzes = self.data_manager.get_available_quizzes()
            embed.add_field(
                name="📚 Available Quizzes",
                value=", ".join(quizzes[:10]) if quizzes else "No quiz files found",
                inline=False
            )
            await interaction.response.send_message(embed=embed, ephemeral=True)

        except Exception as e:
            logger.error(f"Error in help command: {e}")
            await self.send_error_response(interaction, "Failed to display help information", "❌ Help Error")

    async def handle_start(self, interaction: discord.Interaction, quiz_name: Optional[str] = None):
        """Handle /start command"""
        try:
            quiz_name = quiz_name or self.config_manager.get_default_quiz()
            questions = self.data_manager.get_quiz_questions(quiz_name)
            if questions is None:
                available = ", ".join(self.data_manager.get_available_quizzes()) or "none"
                await self.send_error_response(
                    interaction,
                    f"Quiz `{quiz_name}` not found. Available quizzes: {available}",
                    "❌ Unknown Quiz"
                )
                return

            try:
                self.quiz_controller.start(questions, self.config_manager.get_duration())
            except ConfigurationError as e:
                logger.error(f"Cannot start quiz '{quiz_name}': {e}")
                await self.send_error_response(interaction, f"Quiz `{quiz_name}` is malformed: {e}", "❌ Quiz Error")
                return

            self.announce_channel = interaction.channel
            logger.info(f"Quiz '{quiz_name}' started by {interaction.user}")
            await interaction.response.send_message(embed=self._current_question_embed())

        except Exception as e:
            logger.error(f"Error in start command: {e}")
            await self.send_error_response(interaction, "Failed to start quiz", "❌ Quiz Start Error")

    async def handle_answer(self, interaction: discord.Interaction, option: int):
        """Handle /answer command; options are numbered from 1"""
        try:
            controller = self.quiz_controller
            if controller.phase is not Phase.IN_PROGRESS:
                await self.send_warning_response(interaction, "No quiz is running. Use `/start` to begin.")
                return
            if controller.is_current_answered():
                await self.send_warning_response(interaction, "This question is already answered. Answers cannot be changed.")
                return
            if not controller.select_answer(option - 1):
                option_count = len(controller.current_question().options)
                await self.send_warning_response(interaction, f"Pick an option between 1 and {option_count}.")
                return

            await interaction.response.send_message(embed=self._current_question_embed())

        except Exception as e:
            logger.error(f"Error in answer command: {e}")
            await self.send_error_response(interaction, "Failed to record your answer", "❌ Answer Error")

    async def handle_next(self, interaction: discord.Interaction):
        """Handle /next command"""
        await self._navigate(interaction, self.quiz_controller.next_question, "You are already on the last question.")

    async def handle_prev(self, interaction: discord.Interaction):
        """Handle /prev command"""
        await self._navigate(interaction, self.quiz_controller.previous_question, "You are already on the first question.")

    async def handle_finish(self, interaction: discord.Interaction):
        """Handle /finish command"""
        try:
            result = self.quiz_controller.finish()
            if result is None:
                await self.send_warning_response(interaction, "No quiz is running. Use `/start` to begin.")
                return
            await interaction.response.send_message(embed=build_result_embed(result))

        except Exception as e:
            logger.error(f"Error in finish command: {e}")
            await self.send_error_response(interaction, "Failed to finish quiz", "❌ Quiz Finish Error")

    async def handle_review(self, interaction: discord.Interaction):
        """Handle /review command"""
        try:
            controller = self.quiz_controller
            review = controller.review() or controller.get_review()
            if review is None:
                await self.send_warning_response(interaction, "Finish the quiz before reviewing your answers.")
                return
            await interaction.response.send_message(embed=build_review_embed(review))

        except Exception as e:
            logger.error(f"Error in review command: {e}")
            await self.send_error_response(interaction, "Failed to build answer review", "❌ Review Error")

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        try:
            await interaction.response.send_message(
                embed=build_status_embed(self.quiz_controller.get_status()),
                ephemeral=True
            )

        except Exception as e:
            logger.error(f"Error in status command: {e}")
            await self.send_error_response(interaction, "Failed to retrieve quiz status", "❌ Status Error")

    async def handle_highscore(self, interaction: discord.Interaction):
        """Handle /highscore command"""
        try:
            high_score = self.quiz_controller.high_score
            message = f"🔥 High Score: **{high_score}**" if high_score > 0 else "No high score yet"
            await self.send_info_response(interaction, message, "🏆 High Score")

        except Exception as e:
            logger.error(f"Error in highscore command: {e}")
            await self.send_error_response(interaction, "Failed to retrieve high score", "❌ High Score Error")

    async def handle_set_duration(self, interaction: discord.Interaction, seconds: int):
        """Handle /set_duration command"""
        try:
            result = self.config_manager.set_duration(seconds)
            if not result['success']:
                await self.send_error_response(interaction, result['user_message'], "❌ Invalid Duration")
                return
            self.quiz_controller.settings.duration = seconds
            await self.send_info_response(
                interaction,
                f"{result['user_message']}\nApplies from the next `/start`.",
                "⚙️ Settings Updated"
            )

        except Exception as e:
            logger.error(f"Error in set_duration command: {e}")
            await self.send_error_response(interaction, "Failed to update quiz timer", "❌ Configuration Error")

    # -- helpers -----------------------------------------------------------

    async def _navigate(self, interaction: discord.Interaction, move, edge_message: str):
        try:
            if self.quiz_controller.phase is not Phase.IN_PROGRESS:
                await self.send_warning_response(interaction, "No quiz is running. Use `/start` to begin.")
                return
            if not move():
                await self.send_warning_response(interaction, edge_message)
                return
            await interaction.response.send_message(embed=self._current_question_embed())

        except Exception as e:
            logger.error(f"Error in navigation command: {e}")
            await self.send_error_response(interaction, "Failed to change question", "❌ Navigation Error")

    def _current_question_embed(self) -> discord.Embed:
        controller = self.quiz_controller
        return build_question_embed(
            controller.get_status(),
            controller.current_question(),
            controller.selected_option()
        )

    def _on_quiz_finished(self, result: FinishResult) -> None:
        """Announce results when the countdown, not a user, ended the quiz"""
        if not result.timed_out or self.announce_channel is None:
            return
        task = asyncio.get_running_loop().create_task(self._announce_result(self.announce_channel, result))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _announce_result(self, channel, result: FinishResult):
        try:
            await channel.send(embed=build_result_embed(result))
        except discord.HTTPException as e:
            logger.error(f"Failed to announce quiz result: {e}")

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send formatted error response to user"""
        await self._send_embed_response(interaction, message, title, 0xff0000)

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        """Send formatted info response to user"""
        await self._send_embed_response(interaction, message, title, 0x6699ff)

    async def send_warning_response(self, interaction: discord.Interaction, message: str, title: str = "⚠️ Warning"):
        """Send formatted warning response to user"""
        await self._send_embed_response(interaction, message, title, 0xffaa00)

    async def _send_embed_response(self, interaction: discord.Interaction, message: str, title: str, color: int):
        try:
            embed = discord.Embed(title=title, description=message, color=color)
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error(f"Failed to send '{title}' response to user")


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = QuizBot(config)

    try:
        logger.info("Starting QuizMaster bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
