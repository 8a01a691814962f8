"""Tests for per-cluster synthesis and quality filtering."""

import pytest


def make_cluster(texts):
    from dryprompt.analysis.clustering import Cluster
    return Cluster(member_texts=list(texts), centroid=[], size=len(texts))


EXPLAIN_TEXTS = [
    "explain this code to me",
    "explain what this code does",
    "please explain this code",
]


class TestParseSynthesisResponse:
    def test_replacement_and_label(self):
        from dryprompt.analysis.synthesis import parse_synthesis_response
        parsed = parse_synthesis_response("Replacement: Explain the following code:\nConfidence: HIGH")
        assert parsed.replacement == "Explain the following code:"
        assert parsed.label == "HIGH"

    def test_label_defaults_to_medium(self):
        from dryprompt.analysis.synthesis import parse_synthesis_response
        parsed = parse_synthesis_response("replacement: Write unit tests for this")
        assert parsed.replacement == "Write unit tests for this"
        assert parsed.label == "MEDIUM"

    def test_quotes_are_stripped(self):
        from dryprompt.analysis.synthesis import parse_synthesis_response
        parsed = parse_synthesis_response('Replacement: "Summarize this text"\nConfidence: low')
        assert parsed.replacement == "Summarize this text"
        assert parsed.label == "LOW"

    @pytest.mark.parametrize("response", [
        "",
        "I think the best shortcut is explaining code.",
        "Replacement: hi",
        "Replacement: " + "x" * 201,
    ])
    def test_unusable_responses(self, response):
        from dryprompt.analysis.synthesis import parse_synthesis_response
        assert parse_synthesis_response(response) is None


class TestConfidence:
    def test_three_similar_texts(self):
        from dryprompt.analysis.synthesis import calculate_confidence
        confidence = calculate_confidence(make_cluster(EXPLAIN_TEXTS), "Explain the following code:")
        assert confidence == pytest.approx(0.8)
        assert 0 < confidence <= 1

    def test_pair_with_varied_lengths(self):
        from dryprompt.analysis.synthesis import calculate_confidence
        cluster = make_cluster(["fix the bug", "fix the bug in the payment reconciliation job that fails nightly"])
        assert calculate_confidence(cluster, "Fix") == pytest.approx(0.5)

    def test_large_cluster_is_capped(self):
        from dryprompt.analysis.synthesis import calculate_confidence
        cluster = make_cluster(["explain this code"] * 8)
        assert calculate_confidence(cluster, "Explain the following code:") == pytest.approx(0.9)


class TestBuildPrompt:
    def test_samples_are_limited(self):
        from dryprompt.analysis.synthesis import build_cluster_prompt
        cluster = make_cluster([f"explain snippet {i}" for i in range(8)])
        prompt = build_cluster_prompt(cluster, sample_size=5)
        assert "SIMILAR PROMPTS (8 total)" in prompt
        assert '5. "explain snippet 4"' in prompt
        assert "explain snippet 5" not in prompt


class TestSynthesizeSuggestions:
    @pytest.mark.asyncio
    async def test_one_suggestion_per_cluster(self):
        from dryprompt.analysis.synthesis import synthesize_suggestions
        prompts = []

        async def complete(prompt):
            prompts.append(prompt)
            return "Replacement: Explain the following code:\nConfidence: HIGH"

        suggestions, errors = await synthesize_suggestions([make_cluster(EXPLAIN_TEXTS)], complete, delay=0)

        assert errors == []
        assert len(prompts) == 1
        suggestion = suggestions[0]
        assert suggestion.trigger == ";explaincode"
        assert suggestion.replacement == "Explain the following code:"
        assert suggestion.source_texts == EXPLAIN_TEXTS
        assert 0 < suggestion.confidence <= 1

    @pytest.mark.asyncio
    async def test_failing_cluster_is_skipped(self):
        from dryprompt.analysis.synthesis import synthesize_suggestions
        calls = {"n": 0}

        async def complete(prompt):
            calls["n"] += 1
            if calls["n"] == 1:
                raise RuntimeError("upstream timeout")
            return "Replacement: Write unit tests for this function"

        clusters = [make_cluster(EXPLAIN_TEXTS), make_cluster(["write tests for foo", "write tests for bar"])]
        suggestions, errors = await synthesize_suggestions(clusters, complete, delay=0)

        assert calls["n"] == 2
        assert len(suggestions) == 1
        assert suggestions[0].replacement == "Write unit tests for this function"
        assert len(errors) == 1
        assert "Cluster 1" in errors[0]
        assert "upstream timeout" in errors[0]

    @pytest.mark.asyncio
    async def test_unparseable_response_yields_nothing(self):
        from dryprompt.analysis.synthesis import synthesize_suggestions

        async def complete(prompt):
            return "no idea"

        suggestions, errors = await synthesize_suggestions([make_cluster(EXPLAIN_TEXTS)], complete, delay=0)
        assert suggestions == []
        assert errors == []

    @pytest.mark.asyncio
    async def test_sorted_by_confidence(self):
        from dryprompt.analysis.synthesis import synthesize_suggestions

        async def complete(prompt):
            return "Replacement: Explain the following code:"

        small = make_cluster(["explain a", "explain the whole module and every dependency it pulls in"])
        large = make_cluster(["explain this code"] * 6)
        suggestions, _ = await synthesize_suggestions([small, large], complete, delay=0)

        assert [s.confidence for s in suggestions] == sorted((s.confidence for s in suggestions), reverse=True)
        assert len(suggestions[0].source_texts) == 6


class TestQualityFilter:
    def _suggestion(self, confidence, sources=2, replacement="Explain the following code:"):
        from dryprompt.common.schemas import Suggestion
        return Suggestion(
            trigger=";explaincode",
            replacement=replacement,
            source_texts=["explain this"] * sources,
            confidence=confidence,
        )

    def test_threshold_and_support(self):
        from dryprompt.analysis.synthesis import filter_quality_suggestions
        keep = self._suggestion(0.7)
        low = self._suggestion(0.35)
        lonely = self._suggestion(0.9, sources=1)
        assert filter_quality_suggestions([keep, low, lonely]) == [keep]

    def test_at_most_five(self):
        from dryprompt.analysis.synthesis import filter_quality_suggestions
        suggestions = [self._suggestion(0.9) for _ in range(7)]
        assert len(filter_quality_suggestions(suggestions)) == 5
