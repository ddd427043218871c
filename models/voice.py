"""
Voice Models

A structured fingerprint of an author's writing voice, extracted once per
base content item and reused for every adaptation of it.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Any


TONES = ("conversational", "formal", "casual", "authoritative", "analytical")
PERSONALITIES = ("data-driven", "opinion-based", "educational", "balanced")


@dataclass
class Complexity:
    average_sentence_length: float = 18.0
    technical_term_density: float = 2.5  # technical terms per 100 words
    reading_level: int = 10


@dataclass
class Vocabulary:
    key_phrases: List[str] = field(default_factory=list)
    preferred_transitions: List[str] = field(default_factory=list)
    signature_expressions: List[str] = field(default_factory=list)


@dataclass
class Structure:
    paragraph_length: str = "medium"  # short, medium, long
    list_usage: int = 0
    question_frequency: int = 0


@dataclass
class VoiceProfile:
    tone: str = "conversational"
    complexity: Complexity = field(default_factory=Complexity)
    vocabulary: Vocabulary = field(default_factory=Vocabulary)
    structure: Structure = field(default_factory=Structure)
    personality: str = "balanced"

    @classmethod
    def default(cls) -> "VoiceProfile":
        """Profile used whenever extraction cannot complete"""
        return cls(
            tone="conversational",
            complexity=Complexity(average_sentence_length=18, technical_term_density=2.5, reading_level=10),
            vocabulary=Vocabulary(
                key_phrases=["Here's the thing", "Bottom line"],
                preferred_transitions=["However", "That said"],
                signature_expressions=[],
            ),
            structure=Structure(paragraph_length="medium", list_usage=2, question_frequency=1),
            personality="balanced",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tone": self.tone,
            "complexity": {
                "average_sentence_length": round(self.complexity.average_sentence_length, 1),
                "technical_term_density": round(self.complexity.technical_term_density, 2),
                "reading_level": self.complexity.reading_level,
            },
            "vocabulary": {
                "key_phrases": list(self.vocabulary.key_phrases),
                "preferred_transitions": list(self.vocabulary.preferred_transitions),
                "signature_expressions": list(self.vocabulary.signature_expressions),
            },
            "structure": {
                "paragraph_length": self.structure.paragraph_length,
                "list_usage": self.structure.list_usage,
                "question_frequency": self.structure.question_frequency,
            },
            "personality": self.personality,
        }
