"""
Error-reporting setup tests: when Sentry turns on, and what events may carry.
"""

from types import SimpleNamespace

import pytest

from sentry_config import init_sentry, scrub_event


def _app(environment):
    return SimpleNamespace(config={'ENVIRONMENT': environment})


class TestScrubEvent:

    def test_strips_body_cookies_and_credentials(self):
        event = {'request': {
            'url': 'https://api.example.mx/api/sourcing',
            'data': {'publicacion_id': 'x'},
            'cookies': {'session': 'abc'},
            'headers': {'Authorization': 'Bearer secret', 'Content-Type': 'application/json'},
        }}

        scrubbed = scrub_event(event, {})

        assert 'data' not in scrubbed['request']
        assert 'cookies' not in scrubbed['request']
        assert scrubbed['request']['headers']['Authorization'] == '[Filtered]'
        assert scrubbed['request']['headers']['Content-Type'] == 'application/json'

    def test_event_without_request(self):
        event = {'message': 'boom'}
        assert scrub_event(event, {}) == {'message': 'boom'}


class TestInitSentry:

    @pytest.fixture
    def sdk_init(self, mocker):
        return mocker.patch('sentry_sdk.init')

    def test_off_without_dsn(self, monkeypatch, sdk_init):
        monkeypatch.delenv('SENTRY_DSN', raising=False)
        assert init_sentry(_app('production')) is False
        sdk_init.assert_not_called()

    def test_off_outside_production(self, monkeypatch, sdk_init):
        monkeypatch.setenv('SENTRY_DSN', 'https://key@sentry.example.mx/1')
        assert init_sentry(_app('testing')) is False
        sdk_init.assert_not_called()

    def test_on_in_production(self, monkeypatch, sdk_init):
        monkeypatch.setenv('SENTRY_DSN', 'https://key@sentry.example.mx/1')
        monkeypatch.delenv('SENTRY_TRACES_SAMPLE_RATE', raising=False)

        assert init_sentry(_app('production')) is True

        kwargs = sdk_init.call_args.kwargs
        assert kwargs['before_send'] is scrub_event
        assert kwargs['max_request_body_size'] == 'never'
        assert kwargs['send_default_pii'] is False
        assert kwargs['traces_sample_rate'] == 0.2

    def test_bad_sample_rate_keeps_reporting_off(self, monkeypatch, sdk_init):
        monkeypatch.setenv('SENTRY_DSN', 'https://key@sentry.example.mx/1')
        monkeypatch.setenv('SENTRY_TRACES_SAMPLE_RATE', 'mucho')

        assert init_sentry(_app('production')) is False
        sdk_init.assert_not_called()
