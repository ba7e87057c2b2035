"""
Ranking engine adapter tests.

Covers:
  - parse_ranking_response: cleanup, aliases, clamping, dropped indices, structural errors
  - Upstream failure mapping (throttled, quota, generic)
  - Index resolution against the exact batch that was sent
"""

import json

import httpx
import openai
import pytest

from conftest import engine_reply, ranking_entries
from errors import (
    RankingEngineError, RankingEngineQuotaExceeded, RankingEngineThrottled,
    RankingParseError, ServiceUnavailable,
)
from ranking_service import RankingService, parse_ranking_response

CHAT_URL = 'https://api.openai.com/v1/chat/completions'


def _status_error(cls, status, body=None):
    response = httpx.Response(status, request=httpx.Request('POST', CHAT_URL))
    return cls('upstream error', response=response, body=body)


class TestParseRankingResponse:

    def test_plain_array(self):
        content = json.dumps(ranking_entries([2, 0]))
        matches = parse_ranking_response(content, batch_size=3, max_results=10)
        assert [m['index'] for m in matches] == [2, 0]
        assert matches[0]['score'] == 90

    def test_markdown_fences_and_trailing_commas(self):
        content = '```json\n[{"index": 0, "score": 70, "rationale": "ok", "matched_skills": ["SQL",], ' \
                  '"relevant_experience": [],},]\n```'
        matches = parse_ranking_response(content, batch_size=1, max_results=10)
        assert matches[0]['matched_skills'] == ['SQL']

    def test_valid_reply_text_left_untouched(self):
        """Comma-bracket sequences inside a rationale survive parsing."""
        entries = ranking_entries([0])
        entries[0]['rationale'] = 'Python, ] Flask, } SQL'
        match = parse_ranking_response(json.dumps(entries), batch_size=1, max_results=10)[0]
        assert match['rationale'] == 'Python, ] Flask, } SQL'

    def test_fenced_reply_text_left_untouched(self):
        entries = ranking_entries([0])
        entries[0]['rationale'] = 'APIs, ] y datos'
        content = f'Aquí están los resultados:\n```json\n{json.dumps(entries)}\n```'
        match = parse_ranking_response(content, batch_size=1, max_results=10)[0]
        assert match['rationale'] == 'APIs, ] y datos'

    def test_spanish_field_aliases(self):
        content = json.dumps([{'index': 0, 'score': 80, 'razon': 'Buen perfil',
                               'habilidades_match': ['Flask'], 'experiencia_relevante': ['API']}])
        match = parse_ranking_response(content, batch_size=1, max_results=10)[0]
        assert match['rationale'] == 'Buen perfil'
        assert match['relevant_experience'] == ['API']

    def test_score_clamped_and_rationale_truncated(self):
        entries = ranking_entries([0, 1])
        entries[0]['score'] = 140
        entries[1]['score'] = -5
        entries[0]['rationale'] = 'x' * 400
        matches = parse_ranking_response(json.dumps(entries), batch_size=2, max_results=10)
        assert matches[0]['score'] == 100
        assert matches[1]['score'] == 0
        assert len(matches[0]['rationale']) == 255

    def test_out_of_range_and_repeated_indices_dropped(self):
        entries = ranking_entries([0, 7, 0, 1])
        matches = parse_ranking_response(json.dumps(entries), batch_size=2, max_results=10)
        assert [m['index'] for m in matches] == [0, 1]

    def test_truncated_to_max_results(self):
        matches = parse_ranking_response(json.dumps(ranking_entries(range(8))), batch_size=8, max_results=3)
        assert len(matches) == 3

    @pytest.mark.parametrize('content', [
        'no soy json',
        '{"index": 0}',
        '[]',
        '',
    ])
    def test_invalid_structure(self, content):
        with pytest.raises(RankingParseError):
            parse_ranking_response(content, batch_size=5, max_results=10)

    def test_wrong_field_types(self):
        entries = ranking_entries([0])
        entries[0]['score'] = 'alto'
        with pytest.raises(RankingParseError):
            parse_ranking_response(json.dumps(entries), batch_size=1, max_results=10)

    def test_only_invalid_indices(self):
        with pytest.raises(RankingParseError):
            parse_ranking_response(json.dumps(ranking_entries([5, 6])), batch_size=2, max_results=10)


class TestRankingService:

    def test_not_configured(self, app_ctx):
        service = RankingService()
        assert service.is_configured is False
        with pytest.raises(ServiceUnavailable):
            service.rank('prompt', ['a'], 10)

    def test_indices_resolve_against_sent_batch(self, ranking_service, mock_openai):
        mock_openai.return_value = engine_reply(ranking_entries([1, 0]))
        batch = ['candidato-a', 'candidato-b']

        matches = ranking_service.rank('prompt', batch, max_results=10)

        assert [m.candidate for m in matches] == ['candidato-b', 'candidato-a']
        kwargs = mock_openai.call_args.kwargs
        assert kwargs['temperature'] == 0.3
        assert kwargs['messages'][1]['content'] == 'prompt'

    def test_throttled(self, ranking_service, mock_openai):
        mock_openai.side_effect = _status_error(openai.RateLimitError, 429, body={'code': 'rate_limit_exceeded'})
        with pytest.raises(RankingEngineThrottled) as exc:
            ranking_service.rank('prompt', ['a'], 10)
        assert exc.value.retryable is True

    def test_quota_exhausted(self, ranking_service, mock_openai):
        mock_openai.side_effect = _status_error(openai.RateLimitError, 429, body={'code': 'insufficient_quota'})
        with pytest.raises(RankingEngineQuotaExceeded) as exc:
            ranking_service.rank('prompt', ['a'], 10)
        assert exc.value.status_code == 402

    def test_payment_required(self, ranking_service, mock_openai):
        mock_openai.side_effect = _status_error(openai.APIStatusError, 402)
        with pytest.raises(RankingEngineQuotaExceeded):
            ranking_service.rank('prompt', ['a'], 10)

    def test_server_error(self, ranking_service, mock_openai):
        mock_openai.side_effect = _status_error(openai.InternalServerError, 500)
        with pytest.raises(RankingEngineError):
            ranking_service.rank('prompt', ['a'], 10)

    def test_connection_error(self, ranking_service, mock_openai):
        mock_openai.side_effect = openai.APIConnectionError(request=httpx.Request('POST', CHAT_URL))
        with pytest.raises(RankingEngineError):
            ranking_service.rank('prompt', ['a'], 10)

    def test_unparseable_reply(self, ranking_service, mock_openai):
        mock_openai.return_value = engine_reply('Lo siento, no puedo ayudar con eso.')
        with pytest.raises(RankingParseError):
            ranking_service.rank('prompt', ['a'], 10)
