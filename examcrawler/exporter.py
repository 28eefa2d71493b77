"""
Record Export
Hands crawled records to a renderer.  Only JSON ships here; other output
formats plug in by implementing ``Renderer``.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Protocol, Sequence

from .models import QuestionRecord

logger = logging.getLogger(__name__)


class Renderer(Protocol):
    """Anything that can write an ordered record set to ``output_path``."""

    def render(self, records: Sequence[QuestionRecord], label: str, output_path: str) -> str:
        """Write the records and return the absolute path of the created file."""
        ...


class JsonRenderer:
    """
    Writes records as one JSON document: crawl metadata plus the
    question list in crawl order.
    """

    def __init__(self, stats: Optional[Dict] = None, include_comments: bool = True):
        self.stats = stats or {}
        self.include_comments = include_comments

    def render(self, records: Sequence[QuestionRecord], label: str, output_path: str) -> str:
        """
        Export records to JSON.

        Args:
            records: Records in final order
            label: Provider/exam label for the metadata block
            output_path: Output file path

        Returns:
            Absolute path to the created file
        """
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        questions = []
        for record in records:
            item = record.to_dict()
            if not self.include_comments:
                item.pop('comments', None)
            questions.append(item)

        data = {
            'metadata': {
                'label': label,
                'total_questions': len(records),
                'exported_at': datetime.now(timezone.utc).isoformat(timespec='seconds'),
                'crawl_stats': self.stats,
            },
            'questions': questions,
        }

        with open(path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)

        logger.info(f"Exported JSON to {path.absolute()}")
        return str(path.absolute())
