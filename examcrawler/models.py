"""
Record types produced by the extractor.

Records are immutable once built; the crawler never patches a record after
extraction, it drops it instead.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Tuple


@dataclass(frozen=True)
class Comment:
    """One community comment under a question."""
    user: str = "Anonymous"
    text: str = ""
    answer: str = ""  # selected letter, "" when the commenter picked none

    def to_dict(self) -> dict:
        return {
            'user': self.user,
            'answer': self.answer,
            'text': self.text,
        }


@dataclass(frozen=True)
class QuestionRecord:
    """
    Structured content of a single discussion page.
    """
    title: str = ""
    header: str = ""
    body: str = ""
    link: str = ""
    timestamp: str = ""
    exhibit_urls: Tuple[str, ...] = ()
    options: Mapping[str, str] = field(default_factory=dict)
    correct_answers: Tuple[str, ...] = ()
    comments: Tuple[Comment, ...] = ()

    def __post_init__(self):
        # read-only view over a private copy
        object.__setattr__(self, "options", MappingProxyType(dict(self.options)))

    @property
    def is_empty(self) -> bool:
        """True when the page carried none of the question markup."""
        return not (self.title or self.body or self.options)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'title': self.title,
            'header': self.header,
            'body': self.body,
            'link': self.link,
            'timestamp': self.timestamp,
            'exhibit_urls': list(self.exhibit_urls),
            'options': dict(self.options),
            'correct_answers': list(self.correct_answers),
            'comments': [c.to_dict() for c in self.comments],
        }
