from __future__ import annotations

import uuid
from collections import Counter
from dataclasses import dataclass, field
from typing import Literal

from ..utils.clock import now_ms
from .base import GameAction, GameEngine

Phase = Literal["submitting", "voting", "results"]
Choice = Literal["A", "B"]

MAX_ROUNDS = 3
CHOICES = ("A", "B")


@dataclass
class Scenario:
    id: str
    option_a: str
    option_b: str
    submitted_by: str
    round: int


@dataclass
class ScenarioVote:
    voter_id: str
    scenario_id: str
    choice: Choice
    submitted_at_ms: int = field(default_factory=now_ms)


class PreferenceVoteEngine(GameEngine):
    """Would you rather.

    Each round every player writes one two-option scenario, then the table
    votes on the scenarios one by one. The author of a scenario sits out
    its vote. Three rounds per game.
    """

    game_type = "would-you-rather"

    def __init__(self, player_ids, rng=None, scheduler=None, *, max_rounds: int = MAX_ROUNDS) -> None:
        super().__init__(player_ids, rng=rng, scheduler=scheduler)
        self.current_round = 1
        self.max_rounds = max_rounds
        self.phase: Phase = "submitting"
        self.scenarios: list[Scenario] = []
        self.votes: list[ScenarioVote] = []
        self.current_scenario_index = 0

    def _action_handlers(self):
        return {
            "submit_scenario": self._handle_submit_scenario,
            "submit_vote": self._handle_submit_vote,
        }

    def round_scenarios(self, round_number: int | None = None) -> list[Scenario]:
        r = self.current_round if round_number is None else round_number
        return [s for s in self.scenarios if s.round == r]

    @property
    def current_scenario(self) -> Scenario | None:
        scenarios = self.round_scenarios()
        if 0 <= self.current_scenario_index < len(scenarios):
            return scenarios[self.current_scenario_index]
        return None

    def _find_scenario(self, scenario_id: str) -> Scenario | None:
        for s in self.scenarios:
            if s.id == scenario_id:
                return s
        return None

    def _votes_for(self, scenario_id: str) -> list[ScenarioVote]:
        return [v for v in self.votes if v.scenario_id == scenario_id]

    def _handle_submit_scenario(self, action: GameAction) -> None:
        self._require(self.phase == "submitting", "Not in submission phase")

        option_a = action.data.get("optionA")
        option_b = action.data.get("optionB")
        self._require(
            isinstance(option_a, str) and option_a.strip() and isinstance(option_b, str) and option_b.strip(),
            "Both options are required",
        )
        self._require(
            not any(s.submitted_by == action.player_id for s in self.round_scenarios()),
            "Already submitted a scenario for this round",
        )

        self.scenarios.append(
            Scenario(
                id=uuid.uuid4().hex,
                option_a=option_a.strip(),
                option_b=option_b.strip(),
                submitted_by=action.player_id,
                round=self.current_round,
            )
        )

        if self._all_submitted():
            self._start_voting()

    def _has_scenario(self, player_id: str) -> bool:
        return any(s.submitted_by == player_id for s in self.round_scenarios())

    def _all_submitted(self) -> bool:
        return all(self._has_scenario(pid) for pid in self.player_ids)

    def _start_voting(self) -> None:
        self.phase = "voting"
        self.current_scenario_index = 0

    def _voters_done(self, scenario: Scenario) -> list[str]:
        voted = {v.voter_id for v in self._votes_for(scenario.id)}
        return [pid for pid in self.player_ids if pid != scenario.submitted_by and pid in voted]

    def _voting_done(self, scenario: Scenario) -> bool:
        eligible = [pid for pid in self.player_ids if pid != scenario.submitted_by]
        return len(self._voters_done(scenario)) == len(eligible)

    def _handle_submit_vote(self, action: GameAction) -> None:
        self._require(self.phase == "voting", "Not in voting phase")

        scenario_id = action.data.get("scenarioId")
        choice = action.data.get("choice")
        self._require(scenario_id and choice, "Scenario ID and choice are required")
        self._require(choice in CHOICES, "Choice must be A or B")

        scenario = self._find_scenario(scenario_id)
        self._require(scenario is not None, "Scenario not found")
        self._require(scenario is self.current_scenario, "Not voting on the current scenario")
        self._require(scenario.submitted_by != action.player_id, "Cannot vote on your own scenario")
        self._require(
            not any(v.voter_id == action.player_id for v in self._votes_for(scenario_id)),
            "Already voted for this scenario",
        )

        self.votes.append(ScenarioVote(voter_id=action.player_id, scenario_id=scenario_id, choice=choice))

        if self._voting_done(scenario):
            self._resolve_current_scenario()

    def _on_player_removed(self, player_id: str) -> None:
        if self.phase == "submitting":
            self.scenarios = [
                s for s in self.scenarios if not (s.round == self.current_round and s.submitted_by == player_id)
            ]
            if self._all_submitted():
                self._start_voting()
            return

        # Drop their scenarios that are still waiting for a vote.
        pending = self.round_scenarios()[self.current_scenario_index:]
        dropped = {s.id for s in pending if s.submitted_by == player_id}
        if dropped:
            self.scenarios = [s for s in self.scenarios if s.id not in dropped]
            self.votes = [v for v in self.votes if v.scenario_id not in dropped]

        current = self.current_scenario
        if current is None:
            self._end_round()
        elif self._voting_done(current):
            self._resolve_current_scenario()

    def _end_early(self) -> None:
        self.phase = "results"
        self._emit("game_ended", self.get_final_results())

    def _resolve_current_scenario(self) -> None:
        scenario = self.current_scenario
        votes = self._votes_for(scenario.id)

        self.scores[scenario.submitted_by] += len(votes)
        for vote in votes:
            self.scores[vote.voter_id] += 1

        self._emit("scenario_resolved", self._scenario_view(scenario, resolved=True))

        self.current_scenario_index += 1
        if self.current_scenario_index >= len(self.round_scenarios()):
            self._end_round()

    def _end_round(self) -> None:
        self._emit("round_ended", self.get_round_results())
        if self.current_round >= self.max_rounds:
            self.phase = "results"
            self._emit("game_ended", self.get_final_results())
            return

        self.current_round += 1
        self.phase = "submitting"
        self.current_scenario_index = 0
        self._emit("round_started", {"round": self.current_round})

    def is_complete(self) -> bool:
        return self.phase == "results"

    def _tally(self, scenario_id: str) -> dict:
        counts = Counter(v.choice for v in self._votes_for(scenario_id))
        return {c: counts.get(c, 0) for c in CHOICES}

    def _scenario_view(self, scenario: Scenario, resolved: bool = False) -> dict:
        view = {
            "id": scenario.id,
            "optionA": scenario.option_a,
            "optionB": scenario.option_b,
            "submittedBy": scenario.submitted_by,
            "round": scenario.round,
        }
        if resolved:
            view["results"] = self._tally(scenario.id)
        return view

    def _is_resolved(self, scenario: Scenario) -> bool:
        if scenario.round < self.current_round or self.phase == "results":
            return True
        return self.phase == "voting" and self.round_scenarios().index(scenario) < self.current_scenario_index

    def get_state(self, viewer_id: str | None = None) -> dict:
        current = self.current_scenario if self.phase == "voting" else None
        progress = None
        if current is not None:
            eligible = sum(1 for pid in self.player_ids if pid != current.submitted_by)
            progress = {"voted": len(self._voters_done(current)), "total": eligible}
        return {
            "gameType": self.game_type,
            "currentPhase": self.phase,
            "currentRound": self.current_round,
            "maxRounds": self.max_rounds,
            "currentScenarioIndex": self.current_scenario_index,
            "currentScenario": self._scenario_view(current) if current else None,
            "scenarios": [self._scenario_view(s, resolved=self._is_resolved(s)) for s in self.scenarios],
            "votes": [
                {
                    "voterId": v.voter_id,
                    "scenarioId": v.scenario_id,
                    "choice": v.choice,
                    "submittedAt": v.submitted_at_ms,
                }
                for v in self.votes
            ],
            "hasSubmitted": {pid: self._has_scenario(pid) for pid in self.player_ids},
            "votingProgress": progress,
            "scores": dict(self.scores),
        }

    def get_round_results(self) -> dict:
        scenarios = self.round_scenarios()
        return {
            "roundNumber": self.current_round,
            "scores": dict(self.scores),
            "summary": f"Round {self.current_round} complete! {len(scenarios)} scenarios voted on.",
            "details": {"scenarios": [self._scenario_view(s, resolved=True) for s in scenarios]},
        }

    def get_final_results(self) -> dict:
        return {
            "finalScores": dict(self.scores),
            "winner": self.get_winner(),
            "summary": f"Game completed after {self.max_rounds} rounds",
            "totalScenarios": len(self.scenarios),
            "totalVotes": len(self.votes),
        }
