"""Tests for link prioritization and the LLM classifier prompts.

The semantic classifier is always a ``MagicMock``; the LangChain model is
injected into ``LLMClassifier`` so no provider is contacted.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock, patch

import pytest

from mailsift.analysis.llm import LLMClassifier, build_classification_prompt, build_ranking_prompt
from mailsift.analysis.prioritizer import (
    order_by_boost,
    parse_selection,
    prioritize_links,
    select_links,
)
from mailsift.config import Settings
from mailsift.models import Criteria, LinkCandidate


def _link(n: int, text: str = "") -> LinkCandidate:
    return LinkCandidate(url=f"https://example.com/{n}", anchor_text=text or f"Link {n}")


def _ranker(reply) -> MagicMock:
    classifier = MagicMock()
    classifier.rank.return_value = reply
    return classifier


_CRITERIA = Criteria(match_criteria="Go jobs", extraction_fields="skills, deadline")

_LINKS = [
    _link(1, "Unsubscribe"),
    _link(2, "Senior Go Developer"),
    _link(3, "Privacy"),
    _link(4, "See the job"),
]


# ---------------------------------------------------------------------------
# Boost ordering
# ---------------------------------------------------------------------------

class TestOrderByBoost:
    def test_no_pattern_keeps_order(self) -> None:
        ordered, boosted = order_by_boost(_LINKS, None)
        assert ordered == _LINKS
        assert boosted == 0

    def test_matches_move_first_in_original_order(self) -> None:
        ordered, boosted = order_by_boost(_LINKS, "job|developer")
        assert [c.url[-1] for c in ordered] == ["2", "4", "1", "3"]
        assert boosted == 2

    def test_invalid_regex_matched_literally(self) -> None:
        links = [_link(1, "Apply (now"), _link(2, "Other")]
        ordered, boosted = order_by_boost(links, "(now")
        assert ordered[0].anchor_text == "Apply (now"
        assert boosted == 1


# ---------------------------------------------------------------------------
# Reply parsing
# ---------------------------------------------------------------------------

class TestParseSelection:
    @pytest.mark.parametrize("reply", ["NONE", "none", " None. ", '"NONE"'])
    def test_none(self, reply: str) -> None:
        result = parse_selection(reply, 4)
        assert result.ok and result.value == []

    def test_positions(self) -> None:
        result = parse_selection("2, 4,1", 4)
        assert result.ok and result.value == [2, 4, 1]

    @pytest.mark.parametrize("reply", ["", "two", "1, x", "0", "5", "1,1", "1;2"])
    def test_malformed(self, reply: str) -> None:
        assert parse_selection(reply, 4).ok is False

    def test_non_text_reply(self) -> None:
        assert parse_selection(["1"], 4).ok is False


# ---------------------------------------------------------------------------
# select_links / prioritize_links
# ---------------------------------------------------------------------------

class TestSelectLinks:
    def test_empty_candidates_skip_classifier(self) -> None:
        classifier = _ranker("1")
        result = select_links([], _CRITERIA, classifier=classifier)
        assert result.ok and result.value == []
        classifier.rank.assert_not_called()

    def test_selection_in_ranker_order_with_scores(self) -> None:
        result = select_links(_LINKS, _CRITERIA, classifier=_ranker("4, 2"))

        assert result.ok
        assert [c.url for c in result.value] == ["https://example.com/4", "https://example.com/2"]
        assert [c.rank_score for c in result.value] == [1.0, 0.5]

    def test_positions_refer_to_boosted_order(self) -> None:
        criteria = Criteria("Go jobs", "skills", boost_pattern="developer")
        classifier = _ranker("1")
        result = select_links(_LINKS, criteria, classifier=classifier)

        assert [c.anchor_text for c in result.value] == ["Senior Go Developer"]
        ranked, _, boosted = classifier.rank.call_args.args
        assert ranked[0].anchor_text == "Senior Go Developer"
        assert boosted == 1

    def test_max_links_truncates(self) -> None:
        result = select_links(_LINKS, _CRITERIA, classifier=_ranker("4, 2, 1"), max_links=2)
        assert len(result.value) == 2

    def test_ranker_error_is_err(self) -> None:
        classifier = MagicMock()
        classifier.rank.side_effect = RuntimeError("model down")
        result = select_links(_LINKS, _CRITERIA, classifier=classifier)
        assert result.ok is False
        assert "model down" in result.reason


class TestPrioritizeLinks:
    def test_returns_selected(self) -> None:
        links = prioritize_links(
            _LINKS, "Go jobs", "skills", None, classifier=_ranker("2")
        )
        assert [c.anchor_text for c in links] == ["Senior Go Developer"]

    def test_none_selects_nothing(self) -> None:
        assert prioritize_links(_LINKS, "Go jobs", "skills", None, classifier=_ranker("NONE")) == []

    def test_malformed_reply_fails_closed(self) -> None:
        links = prioritize_links(
            _LINKS, "Go jobs", "skills", "job", classifier=_ranker("I'd pick the job link")
        )
        assert links == []

    def test_out_of_range_fails_closed(self) -> None:
        assert prioritize_links(_LINKS, "Go jobs", "skills", None, classifier=_ranker("9")) == []

    def test_guidance_reaches_ranker(self) -> None:
        classifier = _ranker("NONE")
        prioritize_links(_LINKS, "Go jobs", "skills", None, classifier=classifier, guidance="job pages only")
        criteria = classifier.rank.call_args.args[1]
        assert criteria.guidance == "job pages only"


# ---------------------------------------------------------------------------
# Prompts and LLMClassifier
# ---------------------------------------------------------------------------

class TestPrompts:
    def test_ranking_prompt_marks_boosted_links(self) -> None:
        criteria = Criteria("Go jobs", "skills", boost_pattern="developer", guidance="Prefer job pages")
        prompt = build_ranking_prompt([_link(2, "Senior Go Developer"), _link(1, "Privacy")], criteria, 1)

        assert '1. 🎯 PRIORITY: "Senior Go Developer"' in prompt
        assert '2. "Privacy"' in prompt
        assert "Prefer job pages" in prompt
        assert '"NONE"' in prompt

    def test_long_urls_are_truncated(self) -> None:
        link = LinkCandidate(url="https://example.com/" + "x" * 300, anchor_text="Long")
        prompt = build_ranking_prompt([link], _CRITERIA)
        assert "x" * 300 not in prompt

    def test_classification_prompt_contains_inputs(self) -> None:
        prompt = build_classification_prompt("Some chunk text", _CRITERIA)
        assert "Some chunk text" in prompt
        assert "Go jobs" in prompt
        assert "extractedData" in prompt

    def test_classification_prompt_optional_sections(self) -> None:
        criteria = Criteria(
            "Go jobs",
            "skills",
            user_intent="Planning a move to backend work",
            extraction_examples='{"skills": ["Go", "SQL"]}',
            analysis_feedback="Do not list soft skills",
        )
        prompt = build_classification_prompt("Some chunk text", criteria)

        assert "Planning a move to backend work" in prompt
        assert '{"skills": ["Go", "SQL"]}' in prompt
        assert "Do not list soft skills" in prompt
        assert prompt.index("## Match criteria") < prompt.index("## User's intent")
        assert prompt.index("## Feedback on past analyses") < prompt.index("## Content")

    def test_classification_prompt_omits_unset_sections(self) -> None:
        prompt = build_classification_prompt("Some chunk text", _CRITERIA)

        assert "## User's intent" not in prompt
        assert "## Expected output examples" not in prompt
        assert "## Feedback on past analyses" not in prompt

    def test_ranking_prompt_includes_intent(self) -> None:
        criteria = Criteria("Go jobs", "skills", user_intent="Planning a move to backend work")
        prompt = build_ranking_prompt(_LINKS, criteria)
        assert "**WHY THEY NEED IT**: Planning a move to backend work" in prompt


class TestLLMClassifier:
    def test_classify_returns_model_content(self, tmp_path) -> None:
        llm = MagicMock()
        llm.invoke.return_value = MagicMock(content='{"matched": false}')
        classifier = LLMClassifier(Settings(workspace_dir=tmp_path), llm=llm)

        assert classifier.classify("chunk body", _CRITERIA) == '{"matched": false}'
        system, human = llm.invoke.call_args.args[0]
        assert system.type == "system"
        assert "chunk body" in human.content

    def test_rank_returns_model_content(self, tmp_path) -> None:
        llm = MagicMock()
        llm.invoke.return_value = MagicMock(content="1, 2")
        classifier = LLMClassifier(Settings(workspace_dir=tmp_path), llm=llm)

        assert classifier.rank(_LINKS, _CRITERIA) == "1, 2"

    def test_model_built_once_across_threads(self, tmp_path) -> None:
        built = []
        start = threading.Barrier(8)

        def slow_build(self):
            built.append(1)
            time.sleep(0.05)
            llm = MagicMock()
            llm.invoke.return_value = MagicMock(content="{}")
            return llm

        classifier = LLMClassifier(Settings(workspace_dir=tmp_path))

        def call(_):
            start.wait()
            return classifier.classify("chunk body", _CRITERIA)

        with patch.object(LLMClassifier, "_build_llm", slow_build):
            with ThreadPoolExecutor(max_workers=8) as pool:
                replies = list(pool.map(call, range(8)))

        assert replies == ["{}"] * 8
        assert len(built) == 1
