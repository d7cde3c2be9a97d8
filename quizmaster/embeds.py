"""
Discord embed rendering for quiz questions, results and answer review.
"""
from typing import Any, Dict, List, Optional

import discord

from .models import FinishResult, Phase, Question, ReviewEntry

ORANGE = 0xE87A41
GREEN = 0x3DCC77
RED = 0xE84E40
BLUE = 0x6699FF

MAX_EMBED_FIELDS = 25


def progress_bar(percent: int, width: int = 20) -> str:
    """Render a percentage as a fixed-width text bar."""
    percent = max(0, min(100, percent))
    filled = round(width * percent / 100)
    return "█" * filled + "░" * (width - filled)


def format_option_lines(question: Question, selected_index: Optional[int]) -> str:
    """
    List a question's options, numbered from 1.

    Once an option is selected the correct option is marked ✅ and a wrong
    selection is marked ❌.
    """
    lines = []
    for i, option in enumerate(question.options):
        marker = ""
        if selected_index is not None:
            if i == question.correct_index:
                marker = " ✅"
            elif i == selected_index:
                marker = " ❌"
        chosen = "**" if i == selected_index else ""
        lines.append(f"`{i + 1}.` {chosen}{option}{chosen}{marker}")
    return "\n".join(lines)


def build_question_embed(status: Dict[str, Any], question: Question, selected_index: Optional[int]) -> discord.Embed:
    """Render the question currently presented by an in-progress quiz."""
    embed = discord.Embed(
        title=f"Question {status['position'] + 1} of {status['total_questions']}",
        description=f"**{question.text}**\n\n{format_option_lines(question, selected_index)}",
        color=ORANGE
    )
    embed.add_field(
        name="📊 Progress",
        value=f"`{progress_bar(status['progress_percent'])}` {status['progress_percent']}%",
        inline=False
    )
    embed.add_field(
        name="⏱️ Time left",
        value=f"`{progress_bar(status['time_percent'])}` {status['remaining_seconds']}s",
        inline=False
    )
    embed.add_field(name="🎯 Score", value=str(status['score']), inline=True)

    if selected_index is None:
        embed.set_footer(text="Use /answer <number> to lock in an answer. Answers cannot be changed.")
    else:
        embed.set_footer(text="Use /next, /prev or /finish")
    return embed


def result_message(result: FinishResult) -> str:
    """Headline shown under the final score."""
    if result.score == result.total:
        return "🏅 Perfect! You got everything right!"
    if result.score == 0:
        return "😣 Ouch! Better luck next time."
    if result.is_new_high_score:
        return "🎉 New High Score!"
    if result.high_score > 0:
        return f"High Score: **{result.high_score}**"
    return ""


def build_result_embed(result: FinishResult) -> discord.Embed:
    """Render the end-of-quiz summary."""
    embed = discord.Embed(
        title="⏰ Time's up! Quiz Finished!" if result.timed_out else "Quiz Finished!",
        description=f"Your Score: **{result.score}/{result.total}**\n{result_message(result)}".rstrip(),
        color=ORANGE
    )
    embed.set_footer(text="Use /review to see your answers or /start to play again")
    return embed


def build_review_embed(review: List[ReviewEntry]) -> discord.Embed:
    """Render the answer review, one field per question."""
    correct = sum(1 for entry in review if entry.is_correct)
    embed = discord.Embed(
        title="Answer Review",
        description=f"{correct} of {len(review)} correct",
        color=GREEN if correct == len(review) else RED
    )

    for entry in review[:MAX_EMBED_FIELDS]:
        mark = "✔" if entry.is_correct else "✖"
        embed.add_field(
            name=f"{mark} Q{entry.index + 1}: {entry.question}"[:256],
            value=(
                f"Correct Answer: **{entry.correct_answer}**\n"
                f"Your Answer: {entry.user_answer}"
            ),
            inline=False
        )

    if len(review) > MAX_EMBED_FIELDS:
        embed.set_footer(text=f"... and {len(review) - MAX_EMBED_FIELDS} more questions")
    return embed


def build_status_embed(status: Dict[str, Any]) -> discord.Embed:
    """Render a compact summary of the session state."""
    phase = status['phase']
    if phase is Phase.NOT_STARTED:
        embed = discord.Embed(
            title="ℹ️ No Quiz Started",
            description="Use `/start` to begin a new quiz",
            color=BLUE
        )
        embed.add_field(
            name="🔥 High Score",
            value=str(status['high_score']) if status['high_score'] > 0 else "No high score yet",
            inline=True
        )
        return embed

    titles = {
        Phase.IN_PROGRESS: "▶️ Quiz In Progress",
        Phase.FINISHED: "✅ Quiz Finished",
        Phase.REVIEWING: "📝 Reviewing Answers",
    }
    embed = discord.Embed(
        title=titles[phase],
        color=GREEN if phase is Phase.IN_PROGRESS else BLUE
    )
    embed.add_field(
        name="📊 Progress",
        value=(
            f"Question: {status['position'] + 1}/{status['total_questions']}\n"
            f"Answered: {status['answered_count']}\n"
            f"Completion: {status['progress_percent']}%"
        ),
        inline=True
    )
    embed.add_field(
        name="⏱️ Timing",
        value=f"{status['remaining_seconds']}s of {status['duration']}s left",
        inline=True
    )
    embed.add_field(
        name="🎯 Score",
        value=f"Score: {status['score']}\nHigh Score: {status['high_score']}",
        inline=True
    )
    embed.set_footer(text="Use /quiz_help to see all available commands")
    return embed
