"""Tests for decision quality assessment."""

from boothill_gm.models import DecisionOption, NarrativeContext, PlayerDecision
from boothill_gm.quality import evaluate_decision_quality, jaccard_similarity


def _decision(prompt: str, options: list[tuple[str, str]], **kw) -> PlayerDecision:
    return PlayerDecision(
        prompt=prompt,
        options=[DecisionOption(text=t, impact=i) for t, i in options],
        **kw,
    )


GOOD_OPTIONS = [
    ("Draw on Jesse before he reaches the door", "Your reputation as a gunfighter grows"),
    ("Wait behind the bar and watch him", "You learn more about the outlaw's plans"),
    ("Talk Jesse down and offer a drink", "A new alliance might form"),
]


class TestWithoutContext:
    def test_short_prompt_and_single_option_rejected(self) -> None:
        result = evaluate_decision_quality(_decision("Go?", [("Go", "Something")]))
        assert result.score < 0.7
        assert result.acceptable is False
        assert any("prompt" in s.lower() for s in result.suggestions)

    def test_well_formed_decision_accepted(self) -> None:
        result = evaluate_decision_quality(
            _decision("Jesse James walks into the saloon. What do you do?", GOOD_OPTIONS)
        )
        assert result.score == 1.0
        assert result.acceptable is True
        assert result.suggestions == []

    def test_two_options_is_informational_penalty(self) -> None:
        result = evaluate_decision_quality(
            _decision("Jesse James walks into the saloon.", GOOD_OPTIONS[:2])
        )
        assert result.score == 0.95
        assert result.acceptable is True
        assert len(result.suggestions) == 1

    def test_similar_options_penalised(self) -> None:
        result = evaluate_decision_quality(_decision(
            "The stagecoach is late again today.",
            [
                ("Attack the stagecoach guards", "x"),
                ("Attack the stagecoach guards now", "x"),
                ("Talk to the stagecoach driver", "x"),
            ],
        ))
        assert any("too similar" in s for s in result.suggestions)
        assert result.score == 0.9

    def test_single_approach_penalised(self) -> None:
        result = evaluate_decision_quality(_decision(
            "Bandits block the mountain pass.",
            [("Shoot the leader", "a"), ("Charge the group", "b"), ("Fight with fists", "c")],
        ))
        assert any("approaches" in s for s in result.suggestions)
        assert result.score == 0.9

    def test_missing_impacts_and_importance(self) -> None:
        result = evaluate_decision_quality(_decision(
            "Jesse James walks into the saloon.",
            [(t, "") for t, _ in GOOD_OPTIONS],
            importance=None,
        ))
        # completeness 1 - 0.2 - 0.1
        assert result.score == 0.85
        assert len(result.suggestions) == 2


class TestWithContext:
    CONTEXT = NarrativeContext(
        character_focus=["Jesse James"],
        themes=["alliance"],
        important_events=["Jesse James robbed the Dusty Gulch bank"],
    )

    def test_relevant_decision_scores_full(self) -> None:
        result = evaluate_decision_quality(
            _decision("Jesse James walks into the saloon after the bank robbery.", GOOD_OPTIONS),
            self.CONTEXT,
        )
        assert result.score == 1.0

    def test_irrelevant_decision_penalised(self) -> None:
        result = evaluate_decision_quality(
            _decision(
                "A stranger arrives on the noon train.",
                [
                    ("Draw your pistol", "Danger"),
                    ("Wait and observe", "Safety"),
                    ("Ask his business", "Information"),
                ],
            ),
            self.CONTEXT,
        )
        # relevance 1 - 0.2 - 0.2 - 0.3 = 0.3 -> 0.3 + 0.3 + 0.4 * 0.3
        assert result.score == 0.72
        assert len(result.suggestions) == 3

    def test_empty_context_does_not_penalise(self) -> None:
        result = evaluate_decision_quality(
            _decision("Jesse James walks into the saloon.", GOOD_OPTIONS), NarrativeContext()
        )
        assert result.score == 1.0

    def test_no_options_never_raises(self) -> None:
        result = evaluate_decision_quality(PlayerDecision(prompt=""), self.CONTEXT)
        assert 0 <= result.score < 0.7
        assert result.suggestions


def test_jaccard_similarity():
    assert jaccard_similarity("Ride north", "ride north") == 1.0
    assert jaccard_similarity("Ride north", "Walk south") == 0.0
    assert jaccard_similarity("", "") == 0.0
