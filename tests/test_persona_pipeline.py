"""Tests for the persona catalog and governor.workflow.persona_pipeline."""

import pytest
from conftest import ScriptedReviewer, make_item

from governor.config import FlowExitCode, PersonaId, RefinementStage
from governor.personas import PERSONA_CATALOG, REFINEMENT_ORDER, get_persona, personas_for_stage
from governor.workflow import (
    PersonaPipeline,
    PersonaVerdict,
    RefinementStatus,
    VerdictKind,
)

# =============================================================================
# Catalog
# =============================================================================


class TestPersonaCatalog:
    def test_refinement_order(self):
        assert [p.id.value for p in REFINEMENT_ORDER] == ["PO", "MIBS", "SAD", "SASD", "QA"]

    def test_prompt_file_names(self):
        assert [p.prompt_file_name for p in REFINEMENT_ORDER] == [
            "product-owner.md",
            "music-biz-specialist.md",
            "senior-architect-dev.md",
            "senior-audio-dev.md",
            "qa-engineer.md",
        ]

    def test_catalog_is_read_only(self):
        with pytest.raises(TypeError):
            PERSONA_CATALOG[PersonaId.PO] = REFINEMENT_ORDER[1]

    def test_persona_is_frozen(self):
        with pytest.raises(AttributeError):
            REFINEMENT_ORDER[0].display_name = "Boss"

    def test_get_persona_by_string(self):
        assert get_persona("QA").display_name == "QA Engineer"

    def test_get_unknown_persona_raises(self):
        with pytest.raises(ValueError):
            get_persona("CEO")

    def test_personas_for_stage(self):
        assert [p.id for p in personas_for_stage(RefinementStage.TECHNICAL)] == [
            PersonaId.SAD,
            PersonaId.SASD,
        ]


# =============================================================================
# Pipeline
# =============================================================================


class TestRunRefinement:
    @pytest.mark.parametrize(
        "stage, expected",
        [
            (RefinementStage.BUSINESS, ["PO", "MIBS"]),
            (RefinementStage.TECHNICAL, ["SAD", "SASD"]),
            (RefinementStage.ACCEPTANCE, ["QA"]),
        ],
    )
    def test_stage_personas_run_in_order(self, workdir, stage, expected):
        reviewer = ScriptedReviewer()

        result = PersonaPipeline(reviewer).run_refinement(make_item(), stage, workdir)

        assert result.accepted
        assert result.exit_code == FlowExitCode.SUCCESS
        assert reviewer.invoked == expected
        assert [p.value for p in result.invoked] == expected

    def test_reject_stops_pipeline(self, workdir):
        reviewer = ScriptedReviewer({"PO": PersonaVerdict.reject(["story is vague"])})

        result = PersonaPipeline(reviewer).run_refinement(
            make_item(), RefinementStage.BUSINESS, workdir
        )

        assert result.status == RefinementStatus.REJECTED
        assert result.exit_code == FlowExitCode.CONTRACT_VALIDATION_FAILED
        assert result.failed_persona == PersonaId.PO
        assert result.reasons == ["PO: story is vague"]
        assert reviewer.invoked == ["PO"]

    def test_reject_without_reasons_still_explains(self, workdir):
        reviewer = ScriptedReviewer({"SASD": PersonaVerdict.reject([])})

        result = PersonaPipeline(reviewer).run_refinement(
            make_item(), RefinementStage.TECHNICAL, workdir
        )

        assert result.reasons == ["SASD: rejected without reasons"]

    def test_not_applicable_continues(self, workdir):
        reviewer = ScriptedReviewer({"PO": PersonaVerdict.not_applicable("nothing to add")})

        result = PersonaPipeline(reviewer).run_refinement(
            make_item(), RefinementStage.BUSINESS, workdir
        )

        assert result.accepted
        assert reviewer.invoked == ["PO", "MIBS"]
        assert result.steps[0].verdict.kind == VerdictKind.NOT_APPLICABLE
        assert list(result.outputs) == ["MIBS"]

    def test_later_personas_receive_earlier_outputs(self, workdir):
        reviewer = ScriptedReviewer({"SAD": PersonaVerdict.accept({"nfrs": ["latency < 10ms"]})})

        PersonaPipeline(reviewer).run_refinement(make_item(), RefinementStage.TECHNICAL, workdir)

        sad_request, sasd_request = reviewer.requests
        assert sad_request.prior_outputs == {}
        assert sasd_request.prior_outputs == {"SAD": {"nfrs": ["latency < 10ms"]}}

    def test_request_carries_prompts_and_snapshot(self, workdir):
        reviewer = ScriptedReviewer()
        item = make_item()

        PersonaPipeline(reviewer).run_refinement(item, RefinementStage.ACCEPTANCE, workdir)

        request = reviewer.requests[0]
        assert "QA Engineer" in request.persona_prompt
        assert "acceptance flow" in request.flow_prompt
        assert request.item["id"] == 42
        assert request.item["status"] == "candidate"
        assert request.stage == RefinementStage.ACCEPTANCE

    def test_missing_persona_prompt_aborts(self, workdir):
        (workdir / "prompts" / "personas" / "music-biz-specialist.md").unlink()
        reviewer = ScriptedReviewer()

        result = PersonaPipeline(reviewer).run_refinement(
            make_item(), RefinementStage.BUSINESS, workdir
        )

        assert result.status == RefinementStatus.PROMPT_LOAD_FAILED
        assert result.exit_code == FlowExitCode.PROMPT_LOAD_ERROR
        assert result.failed_persona == PersonaId.MIBS
        assert result.prompt_path.name == "music-biz-specialist.md"
        assert reviewer.invoked == ["PO"]

    def test_missing_flow_prompt_invokes_nobody(self, workdir):
        (workdir / "prompts" / "flows" / "refine-tech.md").unlink()
        reviewer = ScriptedReviewer()

        result = PersonaPipeline(reviewer).run_refinement(
            make_item(), RefinementStage.TECHNICAL, workdir
        )

        assert result.exit_code == FlowExitCode.PROMPT_LOAD_ERROR
        assert reviewer.invoked == []

    def test_identical_input_gives_identical_result(self, workdir):
        first = PersonaPipeline(ScriptedReviewer()).run_refinement(
            make_item(), RefinementStage.BUSINESS, workdir
        )
        second = PersonaPipeline(ScriptedReviewer()).run_refinement(
            make_item(), RefinementStage.BUSINESS, workdir
        )
        assert first.invoked == second.invoked
        assert first.outputs == second.outputs

    def test_custom_order(self, workdir):
        order = (get_persona("MIBS"), get_persona("PO"))
        reviewer = ScriptedReviewer()

        PersonaPipeline(reviewer, order=order).run_refinement(
            make_item(), RefinementStage.BUSINESS, workdir
        )

        assert reviewer.invoked == ["MIBS", "PO"]
