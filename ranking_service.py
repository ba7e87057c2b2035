"""
Ranking Engine adapter - LLM-backed candidate ranking.

Sends a requisition profile plus a batch of candidate summaries to an
OpenAI-compatible chat-completions endpoint and returns the top matches.
Matches reference candidates by their position in the batch that was sent;
resolution happens against that exact list, never a re-fetched pool.

Failure mapping:
  non-JSON / invalid structure / empty  -> RankingParseError
  upstream 429 (rate)                   -> RankingEngineThrottled (retryable)
  upstream 429 insufficient_quota / 402 -> RankingEngineQuotaExceeded
  anything else from the SDK            -> RankingEngineError
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field
from typing import List

import openai
from openai import OpenAI

from errors import (
    RankingEngineError, RankingEngineQuotaExceeded, RankingEngineThrottled,
    RankingParseError, ServiceUnavailable,
)
from sourcing.prompt_utils import SYSTEM_MESSAGE
from sourcing.settings import get_float_setting, get_int_setting, get_setting

MAX_RATIONALE_LENGTH = 255

FIELD_ALIASES = {
    'rationale': ('rationale', 'razon'),
    'matched_skills': ('matched_skills', 'habilidades_match'),
    'relevant_experience': ('relevant_experience', 'experiencia_relevante'),
}


@dataclass
class RankedMatch:
    index: int
    candidate: object
    score: int
    rationale: str
    matched_skills: List[str] = field(default_factory=list)
    relevant_experience: List[str] = field(default_factory=list)


def _json_variants(content: str):
    """Raw reply first, then progressively repaired versions of it.

    The trailing-comma repair rewrites string values too, so it only runs
    when the lighter variants fail to parse.
    """
    content = content or ''
    yield content
    unfenced = re.sub(r'```(?:json)?\n?', '', content).strip()
    match = re.search(r'\[[\s\S]*\]', unfenced)
    extracted = match.group(0) if match else unfenced
    yield extracted
    yield re.sub(r',\s*([\]}])', r'\1', extracted)


def _load_json(content: str):
    error = None
    for variant in _json_variants(content):
        try:
            return json.loads(variant)
        except json.JSONDecodeError as e:
            error = e
    raise error


def _pick(entry, key):
    for alias in FIELD_ALIASES[key]:
        if alias in entry:
            return entry[alias]
    return None


def parse_ranking_response(content: str, batch_size: int, max_results: int) -> List[dict]:
    """Parse and validate the engine output into plain match dicts.

    Structural problems (not JSON, not a non-empty array, wrong field types)
    raise RankingParseError. Entries pointing outside the batch, or repeating
    an index, are dropped; if nothing survives that is a parse error too.
    """
    try:
        data = _load_json(content)
    except (json.JSONDecodeError, TypeError) as e:
        logging.warning(f"Ranking response is not valid JSON: {str(e)}")
        raise RankingParseError() from e

    if not isinstance(data, list) or not data:
        raise RankingParseError()

    matches = []
    seen = set()
    for entry in data:
        if not isinstance(entry, dict):
            raise RankingParseError()
        index = entry.get('index')
        score = entry.get('score')
        rationale = _pick(entry, 'rationale')
        skills = _pick(entry, 'matched_skills')
        experience = _pick(entry, 'relevant_experience')

        if (isinstance(index, bool) or not isinstance(index, int)
                or isinstance(score, bool) or not isinstance(score, (int, float))
                or not isinstance(rationale, str)
                or not isinstance(skills, list)
                or not isinstance(experience, list)):
            raise RankingParseError()

        if index < 0 or index >= batch_size or index in seen:
            logging.warning(f"Dropping ranking entry with out-of-range or repeated index {index} (batch size {batch_size})")
            continue
        seen.add(index)

        matches.append({
            'index': index,
            'score': int(round(min(100, max(0, score)))),
            'rationale': rationale[:MAX_RATIONALE_LENGTH],
            'matched_skills': [str(s) for s in skills],
            'relevant_experience': [str(e) for e in experience],
        })

    if not matches:
        raise RankingParseError()

    return matches[:max_results]


class RankingService:
    """
    Thin wrapper around the chat-completions call.

    Usage:
        service = RankingService()
        matches = service.rank(prompt, batch, max_results=10)
    """

    def __init__(self, api_key=None, base_url=None, model=None):
        self.openai_client = None
        self.model = model
        self._init_openai(api_key, base_url)

    def _init_openai(self, api_key=None, base_url=None):
        """Initialize OpenAI client"""
        api_key = api_key or os.environ.get('OPENAI_API_KEY')
        base_url = base_url or os.environ.get('LLM_BASE_URL')
        if api_key:
            kwargs = {'api_key': api_key}
            if base_url:
                kwargs['base_url'] = base_url
            self.openai_client = OpenAI(**kwargs)
        else:
            logging.warning("OPENAI_API_KEY not found - AI sourcing will not work")

    @property
    def is_configured(self) -> bool:
        return self.openai_client is not None

    def _complete(self, prompt: str) -> str:
        model = self.model or os.environ.get('LLM_MODEL') or get_setting('ranking_model')
        client = self.openai_client.with_options(
            max_retries=get_int_setting('ranking_max_retries'),
            timeout=get_float_setting('ranking_timeout_seconds'),
        )
        try:
            response = client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": SYSTEM_MESSAGE},
                    {"role": "user", "content": prompt}
                ],
                temperature=get_float_setting('ranking_temperature'),
                max_tokens=get_int_setting('ranking_max_tokens'),
            )
        except openai.RateLimitError as e:
            if getattr(e, 'code', None) == 'insufficient_quota' or 'quota' in str(e).lower():
                logging.error(f"Ranking engine quota exhausted: {str(e)}")
                raise RankingEngineQuotaExceeded() from e
            logging.warning(f"Ranking engine throttled: {str(e)}")
            raise RankingEngineThrottled() from e
        except openai.APIStatusError as e:
            if e.status_code == 402:
                logging.error(f"Ranking engine credits exhausted: {str(e)}")
                raise RankingEngineQuotaExceeded() from e
            logging.error(f"Ranking engine HTTP {e.status_code}: {str(e)}")
            raise RankingEngineError() from e
        except openai.APIError as e:
            logging.error(f"Ranking engine unavailable: {str(e)}")
            raise RankingEngineError() from e

        if not response.choices:
            return ''
        return response.choices[0].message.content or ''

    def rank(self, prompt: str, batch: list, max_results: int) -> List[RankedMatch]:
        if not self.is_configured:
            raise ServiceUnavailable()

        content = self._complete(prompt)
        try:
            parsed = parse_ranking_response(content, len(batch), max_results)
        except RankingParseError:
            logging.error(f"Could not parse ranking response, preview: {content[:200]!r}")
            raise

        return [
            RankedMatch(
                index=m['index'],
                candidate=batch[m['index']],
                score=m['score'],
                rationale=m['rationale'],
                matched_skills=m['matched_skills'],
                relevant_experience=m['relevant_experience'],
            )
            for m in parsed
        ]
