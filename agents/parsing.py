"""
Response Parsing

Turns raw model text into typed results. All regex and string handling of
model output lives here; callers get a typed value or a ResponseParseError.
"""
import json
import re
from dataclasses import dataclass, field
from typing import Optional, Dict, List, Any

from exceptions import ResponseParseError
from models.voice import VoiceProfile, Complexity, Vocabulary, Structure, TONES


SIGNATURE_PHRASES = ["Here's the thing", "Look,", "Bottom line", "What this means"]
TRANSITIONS = ["However,", "That said,", "Meanwhile,"]
TECHNICAL_TERMS = ["volatility", "yield", "beta", "PE ratio", "EBITDA", "basis points", "yield curve"]

ADAPTATION_LABELS = [
    "PERSONALIZED_SUBJECT",
    "PERSONALIZED_CONTENT",
    "PERSONALIZED_CTA",
    "REASONING",
    "PREDICTED_OPEN_RATE",
    "PREDICTED_CLICK_RATE",
    "OPTIMAL_SEND_TIME",
]

VOICE_LABELS = ["TONE", "COMPLEXITY", "KEY_PHRASES", "STRUCTURE", "PERSONALITY"]

# JSON key aliases for each labeled field
JSON_KEYS = {
    "PERSONALIZED_SUBJECT": ("personalizedSubject", "personalized_subject", "subject"),
    "PERSONALIZED_CONTENT": ("personalizedContent", "personalized_content", "content"),
    "PERSONALIZED_CTA": ("personalizedCTA", "personalized_cta", "cta"),
    "REASONING": ("reasoning",),
    "PREDICTED_OPEN_RATE": ("predictedOpenRate", "predicted_open_rate"),
    "PREDICTED_CLICK_RATE": ("predictedClickRate", "predicted_click_rate"),
    "OPTIMAL_SEND_TIME": ("optimalSendTime", "optimal_send_time"),
}


@dataclass
class ParsedAdaptation:
    """Fields recovered from an adaptation response; optional ones may be missing"""
    subject: str
    content: str
    cta: Optional[str] = None
    reasoning: Optional[str] = None
    predicted_open_rate: Optional[float] = None  # 0-1
    predicted_click_rate: Optional[float] = None  # 0-1
    optimal_send_time: Optional[str] = None


@dataclass
class ParsedPersonalization:
    subject: str
    content: str
    cta: Optional[str] = None
    reasoning: Optional[str] = None
    extras: Dict[str, Any] = field(default_factory=dict)


def parse_json_response(response: str) -> Optional[Any]:
    """Parse JSON from AI response"""
    if not response:
        return None

    try:
        return json.loads(response)
    except json.JSONDecodeError:
        pass

    # Markdown code blocks
    json_match = re.search(r'```(?:json)?\s*([\s\S]*?)\s*```', response)
    if json_match:
        try:
            return json.loads(json_match.group(1))
        except json.JSONDecodeError:
            pass

    # Bare JSON object/array in text
    for pattern in [r'\{[\s\S]*\}', r'\[[\s\S]*\]']:
        match = re.search(pattern, response)
        if match:
            try:
                return json.loads(match.group())
            except json.JSONDecodeError:
                pass

    return None


def extract_labeled_sections(response: str, labels: List[str]) -> Dict[str, str]:
    """
    Split "LABEL: value" text into a dict.

    Labels may be numbered ("1. TONE:") or bolded ("**TONE**:"). A value
    runs until the next known label, so multi-line values survive.
    """
    pattern = re.compile(
        r'^[ \t]*(?:\d+\.[ \t]*)?\**(' + '|'.join(map(re.escape, labels)) + r')\**[ \t]*:',
        re.IGNORECASE | re.MULTILINE,
    )
    matches = list(pattern.finditer(response))
    sections: Dict[str, str] = {}
    for i, match in enumerate(matches):
        end = matches[i + 1].start() if i + 1 < len(matches) else len(response)
        label = match.group(1).upper()
        value = response[match.end():end].strip()
        value = _strip_brackets(value)
        if label not in sections and value:
            sections[label] = value
    return sections


def _strip_brackets(value: str) -> str:
    if value.startswith("[") and value.endswith("]") and "\n" not in value:
        return value[1:-1].strip()
    return value


def parse_rate(value: Any) -> Optional[float]:
    """
    Normalize a predicted rate to a 0-1 fraction.

    Accepts 0.42, 42, "42%" and "42.5 percent"; values above 1 are read as
    percentages.
    """
    if value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        match = re.search(r'-?\d+(?:\.\d+)?', str(value))
        if not match:
            return None
        number = float(match.group())
    if number > 1:
        number = number / 100
    return max(0.0, min(1.0, number))


def parse_adaptation_response(response: str) -> ParsedAdaptation:
    """
    Parse a cohort adaptation response (JSON or labeled text).

    Raises:
        ResponseParseError: if the subject or content is missing
    """
    fields: Dict[str, Any] = {}

    data = parse_json_response(response)
    if isinstance(data, dict):
        for label, keys in JSON_KEYS.items():
            for key in keys:
                if data.get(key) not in (None, ""):
                    fields[label] = data[key]
                    break

    # A JSON object without subject and content is embedded data, not the answer
    if "PERSONALIZED_SUBJECT" not in fields or "PERSONALIZED_CONTENT" not in fields:
        fields = extract_labeled_sections(response or "", ADAPTATION_LABELS)

    subject = str(fields.get("PERSONALIZED_SUBJECT", "")).strip()
    content = str(fields.get("PERSONALIZED_CONTENT", "")).strip()
    if not subject or not content:
        raise ResponseParseError("Adaptation response is missing subject or content", raw_response=response or "")

    def optional_text(label: str) -> Optional[str]:
        value = fields.get(label)
        return str(value).strip() if value not in (None, "") else None

    return ParsedAdaptation(
        subject=subject,
        content=content,
        cta=optional_text("PERSONALIZED_CTA"),
        reasoning=optional_text("REASONING"),
        predicted_open_rate=parse_rate(fields.get("PREDICTED_OPEN_RATE")),
        predicted_click_rate=parse_rate(fields.get("PREDICTED_CLICK_RATE")),
        optimal_send_time=optional_text("OPTIMAL_SEND_TIME"),
    )


def parse_personalization_response(response: str) -> ParsedPersonalization:
    """Parse an individual personalization response (JSON expected)"""
    data = parse_json_response(response)
    if not isinstance(data, dict):
        raise ResponseParseError("Personalization response is not a JSON object", raw_response=response or "")

    subject = data.get("subject") or data.get("personalizedSubject")
    content = data.get("content") or data.get("personalizedContent")
    if not subject or not content:
        raise ResponseParseError("Personalization response is missing subject or content", raw_response=response)

    known = {"subject", "personalizedSubject", "content", "personalizedContent", "cta", "personalizedCTA", "reasoning"}
    return ParsedPersonalization(
        subject=str(subject).strip(),
        content=str(content).strip(),
        cta=data.get("cta") or data.get("personalizedCTA"),
        reasoning=data.get("reasoning"),
        extras={k: v for k, v in data.items() if k not in known},
    )


# Voice analysis

def sentences(text: str) -> List[str]:
    return [s for s in re.split(r'[.!?]+', text) if s.strip()]


def average_sentence_length(text: str) -> float:
    parts = sentences(text)
    if not parts:
        return 0.0
    return sum(len(s.split()) for s in parts) / len(parts)


def technical_term_density(text: str) -> float:
    """Distinct technical terms per 100 words"""
    words = text.split()
    if not words:
        return 0.0
    lowered = text.lower()
    count = sum(1 for term in TECHNICAL_TERMS if term.lower() in lowered)
    return count / len(words) * 100


def parse_voice_analysis(analysis: str, content: str) -> VoiceProfile:
    """
    Build a VoiceProfile from the model's analysis and the content itself.

    Tone, signature expressions and personality come from the analysis;
    the measurable metrics are computed from the content.

    Raises:
        ResponseParseError: if the analysis has none of the expected labels
    """
    sections = extract_labeled_sections(analysis or "", VOICE_LABELS)
    if not sections:
        raise ResponseParseError("Voice analysis has no recognizable sections", raw_response=analysis or "")

    tone = "conversational"
    tone_match = re.match(r'[A-Za-z]+', sections.get("TONE", ""))
    if tone_match:
        candidate = tone_match.group().lower()
        tone = candidate if candidate in TONES else tone

    avg_length = average_sentence_length(content)
    reading_level = 12 if avg_length > 20 else 10 if avg_length > 15 else 8

    signature = []
    if "KEY_PHRASES" in sections:
        first_line = sections["KEY_PHRASES"].splitlines()[0]
        signature = [p.strip().strip('"') for p in first_line.split(",") if p.strip().strip('"')]

    return VoiceProfile(
        tone=tone,
        complexity=Complexity(
            average_sentence_length=round(avg_length),
            technical_term_density=technical_term_density(content),
            reading_level=reading_level,
        ),
        vocabulary=Vocabulary(
            key_phrases=[p for p in SIGNATURE_PHRASES if p in content],
            preferred_transitions=[t for t in TRANSITIONS if t in content],
            signature_expressions=signature,
        ),
        structure=Structure(
            paragraph_length="short" if len(content.split("\n\n")) > 5 else "medium",
            list_usage=len(re.findall(r'•|\d\.', content)),
            question_frequency=content.count("?"),
        ),
        personality=parse_personality(sections.get("PERSONALITY", "")),
    )


def parse_personality(text: str) -> str:
    lowered = text.lower()
    if "data" in lowered:
        return "data-driven"
    if "opinion" in lowered:
        return "opinion-based"
    if "educational" in lowered:
        return "educational"
    return "balanced"
