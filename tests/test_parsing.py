"""
Tests for model response parsing
"""
import pytest

from exceptions import ResponseParseError, ExternalProviderError
from agents.parsing import (
    ADAPTATION_LABELS,
    extract_labeled_sections,
    parse_adaptation_response,
    parse_json_response,
    parse_personalization_response,
    parse_rate,
    parse_voice_analysis,
    average_sentence_length,
)

from conftest import TECH_CONTENT, VOICE_ANALYSIS, adaptation_response


class TestJson:

    def test_plain_json(self):
        assert parse_json_response('{"a": 1}') == {"a": 1}

    def test_markdown_fenced_json(self):
        assert parse_json_response('Here you go:\n```json\n{"a": 1}\n```') == {"a": 1}

    def test_json_embedded_in_prose(self):
        assert parse_json_response('Sure! {"a": [1, 2]} Hope that helps.') == {"a": [1, 2]}

    def test_no_json(self):
        assert parse_json_response("nothing here") is None
        assert parse_json_response("") is None


class TestLabeledSections:

    def test_numbered_labels_with_brackets(self):
        sections = extract_labeled_sections(adaptation_response("Growth Seekers"), ADAPTATION_LABELS)

        assert sections["PERSONALIZED_SUBJECT"] == "Tech Sector Update for Growth Seekers"
        assert sections["PERSONALIZED_CTA"] == "See the Analysis"
        assert sections["OPTIMAL_SEND_TIME"] == "08:00 AM EST"

    def test_multiline_values_and_bold_labels(self):
        response = "**PERSONALIZED_SUBJECT**: Hello\n**PERSONALIZED_CONTENT**: Line one.\nLine two.\nREASONING: because"

        sections = extract_labeled_sections(response, ADAPTATION_LABELS)

        assert sections["PERSONALIZED_CONTENT"] == "Line one.\nLine two."
        assert sections["REASONING"] == "because"


class TestRates:

    @pytest.mark.parametrize("raw, expected", [
        ("42%", 0.42),
        ("9.5 percent", 0.095),
        (42, 0.42),
        (0.3, 0.3),
        ("150%", 1.0),
    ])
    def test_rates_become_fractions(self, raw, expected):
        assert parse_rate(raw) == pytest.approx(expected)

    def test_unparseable_rate(self):
        assert parse_rate("high") is None
        assert parse_rate(None) is None


class TestAdaptation:

    def test_labeled_text_response(self):
        parsed = parse_adaptation_response(adaptation_response("Growth Seekers"))

        assert parsed.subject == "Tech Sector Update for Growth Seekers"
        assert "Growth Seekers should stay focused" in parsed.content
        assert parsed.predicted_open_rate == pytest.approx(0.42)
        assert parsed.predicted_click_rate == pytest.approx(0.095)

    def test_json_response(self):
        parsed = parse_adaptation_response(
            '{"personalizedSubject": "S", "personalizedContent": "C", "predictedOpenRate": 38}'
        )

        assert (parsed.subject, parsed.content) == ("S", "C")
        assert parsed.predicted_open_rate == pytest.approx(0.38)
        assert parsed.cta is None

    def test_labeled_text_with_inline_json_object(self):
        response = (
            "PERSONALIZED_SUBJECT: Volatility Check-In\n"
            'PERSONALIZED_CONTENT: Markets are jumpy, the feed shows {"volatility_index": 28}, so stay disciplined.\n'
            "PREDICTED_OPEN_RATE: 35%\n"
        )

        parsed = parse_adaptation_response(response)

        assert parsed.subject == "Volatility Check-In"
        assert '{"volatility_index": 28}' in parsed.content
        assert parsed.predicted_open_rate == pytest.approx(0.35)

    def test_missing_content_raises(self):
        with pytest.raises(ResponseParseError) as exc_info:
            parse_adaptation_response("PERSONALIZED_SUBJECT: only a subject")

        assert isinstance(exc_info.value, ExternalProviderError)


class TestPersonalization:

    def test_json_fields(self):
        parsed = parse_personalization_response('{"subject": "S", "content": "C", "cta": "Go", "tone": "warm"}')

        assert parsed.cta == "Go"
        assert parsed.extras == {"tone": "warm"}

    def test_non_json_raises(self):
        with pytest.raises(ResponseParseError):
            parse_personalization_response("I cannot help with that")


class TestVoiceAnalysis:

    def test_profile_combines_analysis_and_content(self):
        voice = parse_voice_analysis(VOICE_ANALYSIS, TECH_CONTENT)

        assert voice.tone == "conversational"
        assert voice.personality == "data-driven"
        assert voice.vocabulary.key_phrases == ["Here's the thing", "Bottom line"]
        assert voice.vocabulary.preferred_transitions == ["However,"]
        assert voice.vocabulary.signature_expressions == ["Here's the thing", "Bottom line"]
        assert voice.complexity.average_sentence_length == round(average_sentence_length(TECH_CONTENT))

    def test_unknown_tone_defaults_to_conversational(self):
        voice = parse_voice_analysis("TONE: whimsical\nPERSONALITY: opinion-based", TECH_CONTENT)

        assert voice.tone == "conversational"
        assert voice.personality == "opinion-based"

    def test_unstructured_analysis_raises(self):
        with pytest.raises(ResponseParseError):
            parse_voice_analysis("The writer is friendly.", TECH_CONTENT)
