"""Tests for governor.review.estimation."""

import json

import pytest
from conftest import ScriptedVoter, make_item

from governor.config import ConfidenceLevel, PersonaId, RiskLevel
from governor.errors import PromptLoadError
from governor.review import (
    EstimationConsensus,
    ProviderEstimationVoter,
    StubLanguageModelProvider,
    compute_final_points,
    is_converged,
    parse_estimate_vote,
)

# =============================================================================
# Parsing
# =============================================================================


class TestParseEstimateVote:
    def test_full_answer(self):
        text = json.dumps(
            {
                "storyPoints": 5,
                "confidence": "High",
                "riskLevel": "low",
                "complexityDrivers": ["FFT windowing"],
                "assumptions": ["Mono input"],
                "dependencies": [],
                "rationale": "New DSP path",
            }
        )

        vote = parse_estimate_vote(PersonaId.SASD, text)

        assert vote.story_points == 5
        assert vote.confidence == ConfidenceLevel.HIGH
        assert vote.risk_level == RiskLevel.LOW
        assert vote.complexity_drivers == ("FFT windowing",)
        assert vote.rationale == "New DSP path"
        assert not vote.fallback

    def test_fenced_answer(self):
        vote = parse_estimate_vote(PersonaId.SAD, 'Here:\n```json\n{"storyPoints": 8}\n```')
        assert vote.story_points == 8

    def test_missing_optional_fields_use_defaults(self):
        vote = parse_estimate_vote(PersonaId.QA, '{"storyPoints": 2, "confidence": "sure"}')

        assert vote.confidence == ConfidenceLevel.MEDIUM
        assert vote.risk_level == RiskLevel.MEDIUM
        assert vote.complexity_drivers == ()

    @pytest.mark.parametrize(
        "text",
        [
            "I think about three points.",
            "",
            '{"confidence": "high"}',
            '{"storyPoints": 4}',
            '{"storyPoints": "5"}',
            '{"storyPoints": true}',
            '{"storyPoints": 3.0}',
            "[3, 5]",
        ],
    )
    def test_unusable_answer_becomes_fallback(self, text):
        vote = parse_estimate_vote(PersonaId.SAD, text)

        assert vote.fallback
        assert vote.story_points == 3
        assert vote.complexity_drivers == ("Parse error - using fallback",)
        assert vote.rationale == "Parse error - using fallback estimate"


class TestConsensusRules:
    @pytest.mark.parametrize(
        "points, expected",
        [([3, 3, 3], True), ([2, 3, 3], True), ([3, 5, 3], False), ([1, 13], False), ([], False)],
    )
    def test_is_converged(self, points, expected):
        assert is_converged(points) is expected

    @pytest.mark.parametrize(
        "points, expected",
        [([3, 3, 5], 3), ([5, 3, 5], 5), ([1, 3, 5], 5), ([2, 3], 3), ([8], 8)],
    )
    def test_majority_wins_and_ties_go_up(self, points, expected):
        assert compute_final_points(points) == expected


# =============================================================================
# Consensus runs
# =============================================================================


class TestEstimationConsensus:
    def test_agreement_still_takes_two_rounds(self, workdir):
        voter = ScriptedVoter()

        result = EstimationConsensus(voter).run(make_item(), workdir)

        assert len(result.rounds) == 2
        assert result.converged
        assert voter.voted == ["SAD", "SASD", "QA"] * 2
        assert result.estimate.story_points == 3
        assert result.estimate.notes == "Consensus from 2 round(s). Converged: yes"

    def test_divergent_votes_converge_in_later_round(self, workdir):
        voter = ScriptedVoter({"SAD": [1, 3, 3], "SASD": [5, 5, 3], "QA": [3]})

        result = EstimationConsensus(voter).run(make_item(), workdir)

        assert [r.points for r in result.rounds] == [[1, 5, 3], [3, 5, 3], [3, 3, 3]]
        assert result.converged
        assert result.estimate.story_points == 3

    def test_stops_at_round_limit(self, workdir):
        voter = ScriptedVoter({"SAD": [1], "SASD": [5], "QA": [3]})

        result = EstimationConsensus(voter).run(make_item(), workdir)

        assert len(result.rounds) == 3
        assert not result.converged
        assert result.estimate.story_points == 5
        assert result.estimate.notes.endswith("Converged: no")

    def test_lead_persona_supplies_confidence_and_risk(self, workdir):
        voter = ScriptedVoter({"SAD": ["not json"]})

        estimate = EstimationConsensus(voter).run(make_item(id=42), workdir).estimate

        assert estimate.id == "EST-42-CONSENSUS"
        assert estimate.confidence == ConfidenceLevel.MEDIUM
        assert estimate.risk_level == RiskLevel.MEDIUM
        assert estimate.complexity_drivers == ["Parse error - using fallback"]
        assert estimate.story_points == 3

    def test_later_rounds_see_team_estimates(self, workdir):
        voter = ScriptedVoter({"SASD": [5]})

        EstimationConsensus(voter).run(make_item(), workdir, {"SAD": {"nfrs": ["fast"]}})

        first = json.loads(voter.requests[0].input_context)
        second = json.loads(voter.requests[3].input_context)
        assert "teamEstimates" not in first
        assert first["priorOutputs"] == {"SAD": {"nfrs": ["fast"]}}
        assert second["teamEstimates"]["SASD"]["storyPoints"] == 5
        assert "other team members' estimates" in voter.requests[3].flow_prompt
        assert "other team members' estimates" not in voter.requests[0].flow_prompt

    def test_prompts_come_from_the_repository(self, workdir):
        voter = ScriptedVoter()

        EstimationConsensus(voter).run(make_item(), workdir)

        assert "Review the item as QA." in voter.requests[2].persona_prompt
        assert voter.requests[0].flow_prompt.startswith("# technical flow")

    def test_missing_persona_prompt(self, workdir):
        (workdir / "prompts" / "personas" / "qa-engineer.md").unlink()
        voter = ScriptedVoter()

        with pytest.raises(PromptLoadError):
            EstimationConsensus(voter).run(make_item(), workdir)
        assert voter.requests == []

    def test_item_not_mutated(self, workdir):
        item = make_item()
        EstimationConsensus(ScriptedVoter()).run(item, workdir)
        assert item.estimate is None

    def test_stub_provider_votes(self, workdir):
        voter = ProviderEstimationVoter(StubLanguageModelProvider())

        result = EstimationConsensus(voter).run(make_item(), workdir)

        assert result.converged
        assert result.estimate.story_points == 3
        assert result.estimate.risk_level == RiskLevel.MEDIUM

    @pytest.mark.parametrize("kwargs", [{"team": ()}, {"max_rounds": 0}])
    def test_invalid_configuration(self, kwargs):
        with pytest.raises(ValueError):
            EstimationConsensus(ScriptedVoter(), **kwargs)
