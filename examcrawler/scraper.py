"""
Page Scraper
Extracts provider lists, discussion links and structured question records
from exam-discussion pages.

Every function here accepts raw markup (``str``/``bytes``) or an already
parsed ``BeautifulSoup`` document.  Unexpected markup never raises: each
field falls back to a documented default instead.
"""

import html
import logging
import re
from typing import Dict, List, Optional, Union
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from .models import Comment, QuestionRecord
from .utils import clean_text, dedupe_links, normalize_multiline, strip_suggested_answer

logger = logging.getLogger(__name__)

_BS_PARSER = 'lxml'

SITE_ORIGIN = 'https://www.examtopics.com'
_SITE_HOSTS = {'www.examtopics.com', 'examtopics.com'}

Markup = Union[str, bytes, BeautifulSoup]

_PROVIDER_HREF_RE = re.compile(r'^/exams/([a-z0-9-]+)/?$', re.IGNORECASE)
_DISCUSSION_PROVIDER_HREF_RE = re.compile(r'^/discussions/([a-z0-9-]+)/?$', re.IGNORECASE)
_DISCUSSION_VIEW_RE = re.compile(r'^/discussions/[a-z0-9-]+/view/', re.IGNORECASE)
_NON_DIGITS_RE = re.compile(r'\D+')

_OPTION_DOT_RE = re.compile(r'^([A-F])\.\s*(.+)$', re.DOTALL)
_OPTION_COLON_RE = re.compile(r'^([A-F]):\s*(.+)$', re.DOTALL)
_ANSWER_RUN_RE = re.compile(r'\b([A-F]+)\b')
_COMMENT_ANSWER_RE = re.compile(r'\b([A-F])\b')
_OPTION_LETTERS = 'ABCDEF'

_EXHIBIT_ATTRS = ('src', 'data-src', 'data-original', 'data-lazy-src')


def _soup(markup: Markup) -> BeautifulSoup:
    if isinstance(markup, BeautifulSoup):
        return markup
    return BeautifulSoup(markup or '', _BS_PARSER)


def _hrefs(root) -> List[str]:
    return [a['href'].strip().lower() for a in root.find_all('a', href=True)]


def _parse_count(raw: str) -> int:
    """Digits-only integer parse: ``"12,304"`` -> 12304, no digits -> 0."""
    digits = _NON_DIGITS_RE.sub('', raw or '')
    return int(digits) if digits else 0


def _text(soup: BeautifulSoup, selector: str) -> str:
    """Concatenated text of every node matching ``selector``."""
    return ''.join(node.get_text() for node in soup.select(selector))


# ---------------------------------------------------------------------------
# Listing pages
# ---------------------------------------------------------------------------

def page_count(markup: Markup) -> int:
    """Number of listing pages; 1 when the pagination indicator is missing."""
    strongs = _soup(markup).select('.discussion-list-page-indicator strong')
    if len(strongs) < 2:
        return 1
    try:
        count = int(strongs[1].get_text().strip())
    except ValueError:
        return 1
    return count if count > 0 else 1


def providers_from_exam_index(markup: Markup) -> List[str]:
    """Provider ids linked from the exam index (``/exams/<provider>/``)."""
    providers = set()
    for href in _hrefs(_soup(markup)):
        match = _PROVIDER_HREF_RE.match(href)
        if match and match.group(1).strip():
            providers.add(match.group(1).strip())
    return sorted(providers)


def providers_from_discussions(markup: Markup) -> List[str]:
    """
    Provider ids listed on the discussion index.

    Rows whose discussion counter reads zero are skipped; rows without a
    counter are kept.  When no row yields a provider (markup drift or an
    anti-bot page), every category link on the page is used instead.
    """
    soup = _soup(markup)
    providers = set()

    for row in soup.select('.discussion-row'):
        provider = ''
        for href in _hrefs(row):
            match = _DISCUSSION_PROVIDER_HREF_RE.match(href)
            if match:
                provider = match.group(1).strip()
                break
        if not provider:
            continue

        counter = row.select_one('.discussion-stats-replies')
        if counter is not None:
            count_text = counter.get_text()
            if _parse_count(count_text) == 0 and count_text.strip():
                continue

        providers.add(provider)

    if not providers:
        for href in _hrefs(soup):
            match = _DISCUSSION_PROVIDER_HREF_RE.match(href)
            if match and match.group(1).strip():
                providers.add(match.group(1).strip())

    return sorted(providers)


def discussion_category_count(markup: Markup) -> int:
    """Declared number of discussion categories ("181 Categories"); 0 if absent."""
    indicator = _soup(markup).select_one('.discussion-list-page-indicator')
    if indicator is None:
        return 0
    for span in indicator.find_all('span'):
        count = _parse_count(span.get_text())
        if count > 0:
            return count
    return 0


def provider_exam_slugs(markup: Markup, provider: str) -> List[str]:
    """Exam slugs linked from a provider's exam page (``/exams/<provider>/<slug>/``)."""
    provider = (provider or '').strip().lower()
    pattern = re.compile(
        r'^/exams/' + re.escape(provider) + r'/([a-z0-9-]+)/?$', re.IGNORECASE
    )
    slugs = set()
    for href in _hrefs(_soup(markup)):
        match = pattern.match(href)
        if match and match.group(1).strip():
            slugs.add(match.group(1).strip())
    return sorted(slugs)


def normalize_discussion_href(href: str) -> str:
    """
    Canonical site-relative discussion link, or ``""`` when the href does
    not point at a discussion thread on the site.
    """
    href = (href or '').strip().lower()
    if not href:
        return ''

    if href.startswith(('https://www.examtopics.com/', 'http://www.examtopics.com/')):
        href = href.split('www.examtopics.com', 1)[1]
    elif href.startswith(('https://', 'http://')):
        parsed = urlparse(href)
        if (parsed.hostname or '').lower() not in _SITE_HOSTS:
            return ''
        href = parsed.path

    if not href.startswith('/'):
        href = '/' + href

    href = re.split(r'[?#]', href, 1)[0].strip()
    if not href or not _DISCUSSION_VIEW_RE.match(href):
        return ''
    return href


def discussion_links(markup: Markup) -> List[str]:
    """Discussion thread links on a listing page, deduplicated in page order."""
    links = (normalize_discussion_href(href) for href in _hrefs(_soup(markup)))
    return dedupe_links(link for link in links if link)


# ---------------------------------------------------------------------------
# Question pages
# ---------------------------------------------------------------------------

def exhibit_urls(markup: Markup) -> List[str]:
    """Absolute image URLs referenced from the question body."""
    urls = []
    for img in _soup(markup).select('.card-text img'):
        candidates = [img.get(attr) for attr in _EXHIBIT_ATTRS]
        if img.get('srcset'):
            candidates.append(_first_srcset_url(img['srcset']))
        for raw in candidates:
            normalized = _normalize_exhibit_url(raw)
            if normalized:
                urls.append(normalized)
    return dedupe_links(urls)


def _first_srcset_url(srcset: str) -> str:
    first = srcset.split(',')[0].strip()
    return first.split()[0] if first else ''


def _normalize_exhibit_url(raw: Optional[str]) -> str:
    raw = html.unescape(raw or '').strip()
    if not raw or raw.startswith('data:'):
        return ''
    if raw.startswith('//'):
        raw = 'https:' + raw
    elif raw.startswith('/'):
        raw = SITE_ORIGIN + raw
    if urlparse(raw).scheme not in ('http', 'https'):
        return ''
    return raw


def parse_options(lines: List[str]) -> Dict[str, str]:
    """
    Map option letters to option text.

    Each line is tried as ``A. text``, then ``A: text``; a line with no
    letter prefix takes the letter of its position.  The first occurrence
    of a letter wins.
    """
    options: Dict[str, str] = {}
    position = 0
    for line in lines:
        line = line.strip()
        if not line:
            continue
        match = _OPTION_DOT_RE.match(line) or _OPTION_COLON_RE.match(line)
        if match:
            letter, text = match.group(1), match.group(2).strip()
        elif position < len(_OPTION_LETTERS):
            letter, text = _OPTION_LETTERS[position], line
        else:
            letter, text = '', ''
        position += 1
        if letter and letter not in options:
            options[letter] = text
    return options


def correct_answers(answer_text: str, options: Dict[str, str]) -> List[str]:
    """
    Resolve the revealed answer into option letters.

    Falls back, in order, to options whose text matches the answer, then
    to the first option, then to ``"A"``.
    """
    answer_text = (answer_text or '').strip()
    letters: List[str] = []
    for run in _ANSWER_RUN_RE.findall(answer_text):
        for letter in run:
            if options and letter not in options:
                continue
            if letter not in letters:
                letters.append(letter)
    if letters:
        return letters

    needle = answer_text.lower()
    if needle:
        for letter, text in options.items():
            body = text.lower()
            if body and (needle in body or body in needle):
                letters.append(letter)
    if letters:
        return letters

    if options:
        return [next(iter(options))]
    return ['A']


def comments(markup: Markup) -> List[Comment]:
    """Community comments in page order; comments without text are skipped."""
    result = []
    for node in _soup(markup).select('.discussion-container .comment-container'):
        user_node = node.select_one('.comment-username')
        user = user_node.get_text().strip() if user_node else ''

        answer_text = ''
        strong = node.select_one('.comment-selected-answers strong')
        if strong is not None:
            answer_text = strong.get_text().strip()
        if not answer_text:
            badge = node.select_one('.comment-selected-answers')
            answer_text = badge.get_text().strip() if badge else ''
        match = _COMMENT_ANSWER_RE.search(answer_text.upper())

        content_node = node.select_one('.comment-content')
        text = normalize_multiline(content_node.get_text() if content_node else '')
        if not text:
            continue

        result.append(Comment(
            user=user or 'Anonymous',
            text=text,
            answer=match.group(1) if match else '',
        ))
    return result


class QuestionScraper:
    """
    Builds a ``QuestionRecord`` from a single discussion page.
    """

    # Decorations that would otherwise leak into option text
    UNWANTED_SELECTORS = ['.most-voted-answer-badge']

    def scrape(self, markup: Markup, link: str) -> QuestionRecord:
        """
        Extract every field of a question page.

        Args:
            markup: Page HTML or parsed document
            link: Absolute URL the page was fetched from

        Returns:
            QuestionRecord (empty fields where the markup had none)
        """
        soup = _soup(markup)
        self._remove_unwanted_elements(soup)

        options = parse_options(self._extract_option_lines(soup))
        answer_text = _text(soup, '.correct-answer').strip()

        return QuestionRecord(
            title=clean_text(_text(soup, 'h1')),
            header=_text(soup, '.question-discussion-header').strip().replace('\t', ''),
            body=strip_suggested_answer(clean_text(_text(soup, '.card-text'))),
            link=link,
            timestamp=clean_text(_text(soup, '.discussion-meta-data > i')),
            exhibit_urls=tuple(exhibit_urls(soup)),
            options=options,
            correct_answers=tuple(correct_answers(answer_text, options)),
            comments=tuple(comments(soup)),
        )

    def _remove_unwanted_elements(self, soup: BeautifulSoup) -> None:
        for selector in self.UNWANTED_SELECTORS:
            for element in soup.select(selector):
                element.decompose()

    def _extract_option_lines(self, soup: BeautifulSoup) -> List[str]:
        return [clean_text(li.get_text()) for li in soup.select('li.multi-choice-item')]


_scraper = QuestionScraper()


def question_record(markup: Markup, link: str) -> QuestionRecord:
    return _scraper.scrape(markup, link)
