from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Literal

from ..utils.clock import now_ms
from .base import GameAction, GameEngine

Phase = Literal["submitting", "voting", "results"]

STATEMENTS_PER_PLAYER = 3
POINTS_FOR_CORRECT_GUESS = 10
POINTS_FOR_FOOLING_OTHERS = 5


@dataclass
class Statement:
    id: str
    text: str
    is_lie: bool


@dataclass
class Submission:
    player_id: str
    statements: list[Statement]
    submitted_at_ms: int

    def find(self, statement_id: str) -> Statement | None:
        for s in self.statements:
            if s.id == statement_id:
                return s
        return None


@dataclass
class StatementVote:
    voter_id: str
    target_player_id: str
    selected_statement_id: str
    submitted_at_ms: int = field(default_factory=now_ms)


class StatementDeductionEngine(GameEngine):
    """Two truths and a lie.

    Everyone submits three statements; the server picks which one is the
    lie. Players are then put in the spotlight one at a time, in roster
    order, while the others vote for the statement they think is false.
    """

    game_type = "two-truths-and-a-lie"

    def __init__(self, player_ids, rng=None, scheduler=None) -> None:
        super().__init__(player_ids, rng=rng, scheduler=scheduler)
        self.phase: Phase = "submitting"
        self.submissions: dict[str, Submission] = {}
        self.votes: list[StatementVote] = []
        self.current_target_id: str | None = None
        # Spotlight order; departed players are skipped.
        self.target_order = list(self.player_ids)

    def _action_handlers(self):
        return {
            "submit_statements": self._handle_submit_statements,
            "submit_vote": self._handle_submit_vote,
        }

    def _handle_submit_statements(self, action: GameAction) -> None:
        self._require(self.phase == "submitting", "Not in submission phase")

        statements = action.data.get("statements")
        self._require(
            isinstance(statements, list) and len(statements) == STATEMENTS_PER_PLAYER,
            "Must submit exactly 3 statements",
        )
        self._require(action.player_id not in self.submissions, "Already submitted statements")
        self._require(
            all(isinstance(s, str) and s.strip() for s in statements),
            "All statements must be non-empty",
        )

        lie_index = self._rng.randrange(STATEMENTS_PER_PLAYER)
        self.submissions[action.player_id] = Submission(
            player_id=action.player_id,
            statements=[
                Statement(id=uuid.uuid4().hex, text=text.strip(), is_lie=index == lie_index)
                for index, text in enumerate(statements)
            ],
            submitted_at_ms=now_ms(),
        )

        if self._all_submitted():
            self._start_voting()

    def _handle_submit_vote(self, action: GameAction) -> None:
        self._require(self.phase == "voting", "Not in voting phase")

        target_id = action.data.get("targetPlayerId")
        statement_id = action.data.get("selectedStatementId")
        self._require(target_id and statement_id, "Must specify statement and target player")
        self._require(target_id != action.player_id, "Cannot vote on your own statements")
        self._require(target_id == self.current_target_id, "Not voting on the current player")
        self._require(
            not self.has_voted(action.player_id, target_id),
            "Already voted for this player",
        )

        submission = self.submissions.get(target_id)
        self._require(submission is not None, "Target player has not submitted statements")
        self._require(submission.find(statement_id) is not None, "Invalid statement selection")

        self.votes.append(
            StatementVote(
                voter_id=action.player_id,
                target_player_id=target_id,
                selected_statement_id=statement_id,
            )
        )

        if self._spotlight_done(target_id):
            self._next_target()

    def _all_submitted(self) -> bool:
        return all(pid in self.submissions for pid in self.player_ids)

    def _start_voting(self) -> None:
        self.phase = "voting"
        self.current_target_id = self.player_ids[0]

    def _voters_done(self, target_id: str) -> list[str]:
        return [pid for pid in self.player_ids if pid != target_id and self.has_voted(pid, target_id)]

    def _spotlight_done(self, target_id: str) -> bool:
        return len(self._voters_done(target_id)) == len(self.player_ids) - 1

    def _next_target(self) -> None:
        index = self.target_order.index(self.current_target_id)
        for candidate in self.target_order[index + 1:]:
            if candidate in self.player_ids:
                self.current_target_id = candidate
                return
        self._finish()

    def _on_player_removed(self, player_id: str) -> None:
        if self.phase == "submitting":
            self.submissions.pop(player_id, None)
            if self._all_submitted():
                self._start_voting()
            return

        if player_id == self.current_target_id:
            # Their spotlight never finished; those votes don't count.
            self.votes = [v for v in self.votes if v.target_player_id != player_id]
            self._next_target()
        elif self._spotlight_done(self.current_target_id):
            self._next_target()

    def _end_early(self) -> None:
        self._finish()

    def _finish(self) -> None:
        self.phase = "results"
        self._calculate_scores()
        self._emit("round_ended", self.get_round_results())
        self._emit("game_ended", self.get_final_results())

    def _is_correct(self, vote: StatementVote) -> bool:
        submission = self.submissions.get(vote.target_player_id)
        chosen = submission.find(vote.selected_statement_id) if submission else None
        return bool(chosen and chosen.is_lie)

    def _calculate_scores(self) -> None:
        for vote in self.votes:
            if self._is_correct(vote):
                self.scores[vote.voter_id] += POINTS_FOR_CORRECT_GUESS
            else:
                # Picked one of the target's truths.
                self.scores[vote.target_player_id] += POINTS_FOR_FOOLING_OTHERS

    def has_submitted(self, player_id: str) -> bool:
        return player_id in self.submissions

    def has_voted(self, player_id: str, target_id: str) -> bool:
        return any(v.voter_id == player_id and v.target_player_id == target_id for v in self.votes)

    def is_complete(self) -> bool:
        return self.phase == "results"

    def _submission_view(self, submission: Submission) -> dict:
        reveal = self.phase == "results"
        statements = []
        for s in submission.statements:
            item = {"id": s.id, "text": s.text}
            if reveal:
                item["isLie"] = s.is_lie
            statements.append(item)
        return {
            "playerId": submission.player_id,
            "statements": statements,
            "submittedAt": submission.submitted_at_ms,
        }

    def get_state(self, viewer_id: str | None = None) -> dict:
        progress = None
        if self.current_target_id and self.phase == "voting":
            progress = {
                "voted": len(self._voters_done(self.current_target_id)),
                "total": len(self.player_ids) - 1,
            }
        return {
            "gameType": self.game_type,
            "phase": self.phase,
            "currentRound": 1,
            "totalRounds": 1,
            "currentTargetPlayer": self.current_target_id,
            "submissions": [self._submission_view(s) for s in self.submissions.values()],
            "hasSubmitted": {pid: pid in self.submissions for pid in self.player_ids},
            "votes": [
                {
                    "voterId": v.voter_id,
                    "targetPlayerId": v.target_player_id,
                    "selectedStatementId": v.selected_statement_id,
                    "submittedAt": v.submitted_at_ms,
                }
                for v in self.votes
            ],
            "votingProgress": progress,
            "scores": dict(self.scores),
        }

    def get_round_results(self) -> dict:
        correct = sum(1 for v in self.votes if self._is_correct(v))
        details = None
        if self.phase == "results":
            details = {
                "submissions": [self._submission_view(s) for s in self.submissions.values()],
                "correctVotes": correct,
                "totalVotes": len(self.votes),
            }
        return {
            "roundNumber": 1,
            "scores": dict(self.scores),
            "summary": f"Round 1 complete! {correct} correct guesses out of {len(self.votes)} total votes.",
            "details": details,
        }

    def get_final_results(self) -> dict:
        winner = self.get_winner()
        summary = "Game in progress"
        if winner is not None:
            summary = f"Game complete! Winner scored {self.scores[winner]} points!"
        return {
            "finalScores": dict(self.scores),
            "winner": winner,
            "summary": summary,
            "gameStats": {
                "totalSubmissions": len(self.submissions),
                "totalVotes": len(self.votes),
            },
        }
