from __future__ import annotations

import logging
import random
import uuid
from dataclasses import dataclass, field
from typing import Literal

from ..timers import Scheduler, TimerHandle, cancel_timer
from ..utils.clock import now_ms
from .base import GameAction, GameEngine
from .words import DEFAULT_PROMPTS, Prompt, pick_prompt, word_hint

logger = logging.getLogger(__name__)

RoundPhase = Literal["drawing", "guessing", "reveal"]
GamePhase = Literal["setup", "playing", "finished"]

ROUND_DURATION_SEC = 90
GUESSING_AT_SEC = 30
REVEAL_DURATION_SEC = 5
MAX_ROUNDS = 8
MAX_STROKES = 2000

BASE_GUESS_POINTS = 10
GUESS_POINTS_STEP = 2
MIN_GUESS_POINTS = 2
DRAWER_POINTS_PER_GUESS = 2


@dataclass
class Canvas:
    strokes: list[dict] = field(default_factory=list)
    width: int = 800
    height: int = 600
    background_color: str = "#ffffff"

    def to_dict(self) -> dict:
        return {
            "strokes": list(self.strokes),
            "width": self.width,
            "height": self.height,
            "backgroundColor": self.background_color,
        }


@dataclass
class Guess:
    player_id: str
    text: str
    is_correct: bool
    timestamp: int
    points: int = 0


@dataclass
class DrawingRound:
    round_number: int
    drawer_id: str
    prompt: Prompt
    time_limit: int
    time_remaining: int
    canvas: Canvas = field(default_factory=Canvas)
    guesses: list[Guess] = field(default_factory=list)
    phase: RoundPhase = "drawing"
    started_at_ms: int | None = None
    completed_at_ms: int | None = None

    @property
    def correct_guesses(self) -> list[Guess]:
        return [g for g in self.guesses if g.is_correct]

    def has_guessed_correctly(self, player_id: str) -> bool:
        return any(g.is_correct and g.player_id == player_id for g in self.guesses)


def speed_bonus(time_remaining: int) -> int:
    if time_remaining >= 60:
        return 3
    if time_remaining >= 30:
        return 1
    return 0


class DrawingGuessEngine(GameEngine):
    """Quick draw: one player draws a prompt, everyone else races to guess it.

    Rounds run on a one-second countdown owned by the engine. The drawing
    phase turns into the guessing phase at ``guessing_at`` seconds left, the
    round ends at zero (or as soon as every guesser got it) and, after a
    short reveal, the next round starts on its own.
    """

    game_type = "quick-draw"

    def __init__(
        self,
        player_ids: list[str],
        rng: random.Random | None = None,
        scheduler: Scheduler | None = None,
        *,
        round_duration: int = ROUND_DURATION_SEC,
        guessing_at: int = GUESSING_AT_SEC,
        reveal_duration: int = REVEAL_DURATION_SEC,
        max_strokes: int = MAX_STROKES,
        prompts: tuple[Prompt, ...] = DEFAULT_PROMPTS,
    ) -> None:
        if scheduler is None:
            raise ValueError("quick draw needs a scheduler for its round timer")
        super().__init__(player_ids, rng=rng, scheduler=scheduler)

        self.round_duration = round_duration
        self.guessing_at = guessing_at
        self.reveal_duration = reveal_duration
        self.max_strokes = max_strokes
        self._prompts = prompts

        self.player_order = list(self.player_ids)
        self._rng.shuffle(self.player_order)
        self.total_rounds = min(len(self.player_order) * 2, MAX_ROUNDS)
        self.current_round = 0
        self.rounds: list[DrawingRound] = []
        self.game_phase: GamePhase = "setup"

        self._used_prompts: set[str] = set()
        self._countdown: TimerHandle | None = None
        self._reveal_timer: TimerHandle | None = None

    def _action_handlers(self):
        return {
            "start_drawing": self._handle_start_drawing,
            "add_stroke": self._handle_add_stroke,
            "submit_guess": self._handle_submit_guess,
            "clear_canvas": self._handle_clear_canvas,
            "undo_stroke": self._handle_undo_stroke,
        }

    @property
    def current_round_data(self) -> DrawingRound | None:
        if self.current_round <= 0 or self.current_round > len(self.rounds):
            return None
        return self.rounds[self.current_round - 1]

    def _active_round(self) -> DrawingRound:
        current = self.current_round_data
        self._require(current is not None, "No active round")
        return current

    # -- actions ---------------------------------------------------------

    def _handle_start_drawing(self, action: GameAction) -> None:
        self._require(self.game_phase != "finished", "Game is already finished")
        if self.game_phase == "setup":
            self._start_new_round()
            return

        current = self.current_round_data
        self._require(
            current is not None and current.phase == "reveal",
            "Game is not in a state to start drawing",
        )
        self._advance()

    def _handle_add_stroke(self, action: GameAction) -> None:
        stroke = action.data.get("stroke")
        self._require(isinstance(stroke, dict), "Stroke data is required")

        current = self._active_round()
        self._require(current.drawer_id == action.player_id, "Only the current drawer can add strokes")
        self._require(current.phase in ("drawing", "guessing"), "Not in drawing phase")

        stroke = dict(stroke)
        stroke.setdefault("id", uuid.uuid4().hex)
        stroke.setdefault("timestamp", action.timestamp)

        strokes = current.canvas.strokes
        strokes.append(stroke)
        if len(strokes) > self.max_strokes:
            del strokes[: len(strokes) - self.max_strokes]

    def _handle_submit_guess(self, action: GameAction) -> None:
        text = action.data.get("guess")
        current = self._active_round()

        self._require(current.drawer_id != action.player_id, "The drawer cannot submit guesses")
        self._require(current.phase == "guessing", "Not in guessing phase")
        self._require(isinstance(text, str) and text.strip(), "Guess is required")
        self._require(not current.has_guessed_correctly(action.player_id), "You already guessed correctly")

        guess_text = text.strip()
        is_correct = guess_text.lower() == current.prompt.word.lower()
        prior_correct = len(current.correct_guesses)

        guess = Guess(
            player_id=action.player_id,
            text=guess_text,
            is_correct=is_correct,
            timestamp=now_ms(),
        )
        current.guesses.append(guess)

        if not is_correct:
            return

        points = max(BASE_GUESS_POINTS - GUESS_POINTS_STEP * prior_correct, MIN_GUESS_POINTS)
        points += speed_bonus(current.time_remaining)
        guess.points = points
        self.scores[action.player_id] += points

        if self._everyone_guessed(current):
            self._end_round(current)

    def _everyone_guessed(self, current: DrawingRound) -> bool:
        guessers = [pid for pid in self.player_ids if pid != current.drawer_id]
        correct = {g.player_id for g in current.correct_guesses}
        return all(pid in correct for pid in guessers)

    def _handle_clear_canvas(self, action: GameAction) -> None:
        current = self._active_round()
        self._require(current.drawer_id == action.player_id, "Only the current drawer can clear the canvas")
        current.canvas.strokes = []

    def _handle_undo_stroke(self, action: GameAction) -> None:
        current = self._active_round()
        self._require(current.drawer_id == action.player_id, "Only the current drawer can undo strokes")
        if current.canvas.strokes:
            current.canvas.strokes.pop()

    def _on_player_removed(self, player_id: str) -> None:
        self.player_order.remove(player_id)
        current = self.current_round_data
        if current is None or current.phase == "reveal":
            return
        if current.drawer_id == player_id or self._everyone_guessed(current):
            self._end_round(current)

    def _end_early(self) -> None:
        self._end_game()

    # -- round lifecycle -----------------------------------------------

    def _advance(self) -> None:
        self._reveal_timer = cancel_timer(self._reveal_timer)
        if self.current_round >= self.total_rounds:
            self._end_game()
        else:
            self._start_new_round()

    def _start_new_round(self) -> None:
        if self.current_round >= self.total_rounds:
            self._end_game()
            return

        self.current_round += 1
        drawer_id = self.player_order[(self.current_round - 1) % len(self.player_order)]
        new_round = DrawingRound(
            round_number=self.current_round,
            drawer_id=drawer_id,
            prompt=pick_prompt(self._rng, self._used_prompts, self._prompts),
            time_limit=self.round_duration,
            time_remaining=self.round_duration,
            started_at_ms=now_ms(),
        )
        self.rounds.append(new_round)
        self.game_phase = "playing"

        self._countdown = cancel_timer(self._countdown)
        self._countdown = self._scheduler.call_every(1, self._tick, new_round.round_number)

        self._emit(
            "round_started",
            {"round": new_round.round_number, "timeLimit": new_round.time_limit, "drawerId": drawer_id},
        )
        logger.debug("Round %s started, drawer %s", new_round.round_number, drawer_id)

    def _tick(self, round_number: int) -> None:
        current = self.current_round_data
        if self.disposed or current is None or current.round_number != round_number:
            return
        if current.phase == "reveal":
            return

        current.time_remaining -= 1
        if current.time_remaining == self.guessing_at and current.phase == "drawing":
            current.phase = "guessing"
            self._emit("phase_changed", {"round": round_number, "phase": "guessing"})

        self._emit("time_update", current.time_remaining)
        if current.time_remaining <= 0:
            self._end_round(current)
        self._notify()

    def _end_round(self, current: DrawingRound) -> None:
        if current.phase == "reveal":
            return
        self._countdown = cancel_timer(self._countdown)

        current.phase = "reveal"
        current.completed_at_ms = now_ms()
        correct = current.correct_guesses
        if correct:
            self.scores[current.drawer_id] += len(correct) * DRAWER_POINTS_PER_GUESS

        self._emit("round_ended", self.get_round_results())
        self._reveal_timer = self._scheduler.call_later(
            self.reveal_duration, self._after_reveal, current.round_number
        )

    def _after_reveal(self, round_number: int) -> None:
        if self.disposed or self.game_phase == "finished" or self.current_round != round_number:
            return
        self._advance()
        self._notify()

    def _end_game(self) -> None:
        if self.game_phase == "finished":
            return
        self.game_phase = "finished"
        self._cancel_timers()
        self._emit("game_ended", self.get_final_results())

    def _cancel_timers(self) -> None:
        self._countdown = cancel_timer(self._countdown)
        self._reveal_timer = cancel_timer(self._reveal_timer)

    def cleanup(self) -> None:
        self._cancel_timers()
        super().cleanup()

    # -- views -----------------------------------------------------------

    def is_complete(self) -> bool:
        return self.game_phase == "finished"

    def _round_view(self, current: DrawingRound, viewer_id: str | None) -> dict:
        revealed = current.phase == "reveal" or viewer_id == current.drawer_id
        guesses = []
        for g in current.guesses:
            # A correct guess is the word itself.
            hide = g.is_correct and not revealed and g.player_id != viewer_id
            guesses.append(
                {
                    "playerId": g.player_id,
                    "guess": None if hide else g.text,
                    "isCorrect": g.is_correct,
                    "points": g.points,
                    "timestamp": g.timestamp,
                }
            )
        view = {
            "roundNumber": current.round_number,
            "drawerId": current.drawer_id,
            "phase": current.phase,
            "timeLimit": current.time_limit,
            "timeRemaining": current.time_remaining,
            "canvas": current.canvas.to_dict(),
            "guesses": guesses,
            "hint": word_hint(current.prompt.word),
            "category": current.prompt.category,
            "difficulty": current.prompt.difficulty,
            "startedAt": current.started_at_ms,
            "completedAt": current.completed_at_ms,
        }
        if revealed:
            view["prompt"] = current.prompt.to_dict()
        return view

    @staticmethod
    def _round_summary(r: DrawingRound) -> dict:
        return {
            "roundNumber": r.round_number,
            "drawerId": r.drawer_id,
            "word": r.prompt.word,
            "correctGuessers": [g.player_id for g in r.correct_guesses],
        }

    def get_state(self, viewer_id: str | None = None) -> dict:
        current = self.current_round_data
        active = current is not None and current.phase in ("drawing", "guessing")
        can_draw = active and (viewer_id is None or viewer_id == current.drawer_id)
        can_guess = (
            current is not None
            and current.phase == "guessing"
            and (viewer_id is None or (viewer_id != current.drawer_id and not current.has_guessed_correctly(viewer_id)))
        )
        return {
            "gameType": self.game_type,
            "gamePhase": self.game_phase,
            "currentRound": self.current_round,
            "totalRounds": self.total_rounds,
            "playerOrder": list(self.player_order),
            "scores": dict(self.scores),
            "currentRoundData": self._round_view(current, viewer_id) if current else None,
            "roundHistory": [self._round_summary(r) for r in self.rounds if r.phase == "reveal"],
            "canDraw": can_draw,
            "canGuess": can_guess,
        }

    def get_round_results(self) -> dict:
        current = self.current_round_data
        if current is None:
            return {"roundNumber": 0, "scores": dict(self.scores), "summary": "No rounds played", "details": {}}
        correct = current.correct_guesses
        return {
            "roundNumber": current.round_number,
            "scores": dict(self.scores),
            "summary": (
                f"Round {current.round_number} complete! The word was {current.prompt.word}. "
                f"{len(correct)} player(s) guessed it."
            ),
            "details": self._round_summary(current),
        }

    def get_final_results(self) -> dict:
        return {
            "finalScores": dict(self.scores),
            "winner": self.get_winner(),
            "summary": f"Game completed after {self.total_rounds} rounds",
            "totalRounds": self.total_rounds,
            "rounds": [self._round_summary(r) for r in self.rounds],
        }
