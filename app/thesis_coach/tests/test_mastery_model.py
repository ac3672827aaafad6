from app.thesis_coach.services.analysis_policy import evaluate
from app.thesis_coach.services.mastery_model import MasteryModel, MasteryState


def test_initial_state():
    model = MasteryModel()
    assert model.state == MasteryState(mastery=30, cognitive_load="optimal", engagement="passive")


def test_initial_mastery_is_clamped():
    assert MasteryModel(150).mastery == 100
    assert MasteryModel(-5).mastery == 0


def test_apply_analysis_raises_to_floor_not_additively():
    model = MasteryModel()
    assert model.apply_analysis(evaluate("")) == 40
    # The same floor again is a no-op
    assert model.apply_analysis(evaluate("")) == 40


def test_apply_analysis_never_lowers_mastery():
    model = MasteryModel(90)
    assert model.apply_analysis(evaluate("")) == 90
    assert model.mastery == 90


def test_complete_structure_resets_cognitive_load():
    model = MasteryModel()
    model.state.cognitive_load = "high"
    text = "我認為例如因此" + "學" * 113

    assert model.apply_analysis(evaluate(text)) == 70
    assert model.state.cognitive_load == "optimal"


def test_incomplete_structure_keeps_cognitive_load():
    model = MasteryModel()
    model.state.cognitive_load = "high"
    model.apply_analysis(evaluate("學" * 60))
    assert model.state.cognitive_load == "high"


def test_coaching_success_adds_five_and_caps_at_100():
    model = MasteryModel(97)
    assert model.apply_coaching_success() == 100
    assert model.apply_coaching_success() == 100
    assert model.state.engagement == "active"


def test_mark_engagement_active_leaves_mastery_alone():
    model = MasteryModel()
    model.mark_engagement_active()
    assert model.snapshot() == {"mastery": 30, "cognitive_load": "optimal", "engagement": "active"}


def test_mastery_is_monotonic_across_mixed_updates():
    model = MasteryModel()
    texts = ["", "學" * 60, "我認為" + "學" * 60, "", "我認為例如因此" + "學" * 120, "學" * 10]
    previous = model.mastery
    for text in texts:
        model.apply_analysis(evaluate(text))
        assert model.mastery >= previous
        previous = model.mastery
        model.apply_coaching_success()
        assert model.mastery >= previous
        previous = model.mastery
