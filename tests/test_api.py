from __future__ import annotations

import pytest
from helpers import Clock, FakeSource, make_sample

from api_app import create_app
from selfheal.config import EngineConfig
from selfheal.engine import MonitoringEngine


@pytest.fixture
def engine():
    engine = MonitoringEngine(EngineConfig(), FakeSource([make_sample(ts=0, cpu=99)]), clock=Clock())
    yield engine
    engine.stop(wait=False)


@pytest.fixture
def client(engine):
    app = create_app(engine)
    app.config['TESTING'] = True
    return app.test_client()


def test_health_before_first_tick(client) -> None:
    data = client.get('/api/health').get_json()
    assert data['sample'] is None
    assert data['stale'] is False
    assert data['overall_uptime'] == 100.0
    assert {c['component'] for c in data['components']} == {'application', 'database', 'network'}


def test_alert_lifecycle(client, engine) -> None:
    engine.tick()

    alerts = client.get('/api/alerts').get_json()
    assert [a['id'] for a in alerts] == [2, 1]
    assert [a['id'] for a in client.get('/api/alerts/critical').get_json()] == [2]

    acked = client.post('/api/alerts/2/acknowledge').get_json()
    assert acked['acknowledged'] is True
    resolved = client.post('/api/alerts/2/resolve').get_json()
    assert resolved['resolved'] is True
    assert client.get('/api/alerts/critical').get_json() == []

    assert client.post('/api/alerts/99/resolve').status_code == 404


def test_metrics_history_from_sampler_window(client, engine) -> None:
    engine.tick()
    history = client.get('/api/metrics/history').get_json()
    assert len(history) == 1
    assert history[0]['cpu'] == 99


def test_rules_and_toggle(client) -> None:
    rules = client.get('/api/rules').get_json()
    assert rules[0]['id'] == 'high-cpu'
    assert client.post('/api/rules/high-cpu/toggle').get_json()['enabled'] is False
    assert client.post('/api/rules/nope/toggle').status_code == 404


def test_report_error(client, engine) -> None:
    resp = client.post('/api/errors', json={'type': 'client', 'severity': 'low',
                                            'message': 'button broken', 'component': 'ui'})
    assert resp.status_code == 201
    body = resp.get_json()
    assert body['error_type'] == 'client'
    assert body['context']['component'] == 'ui'

    errors = client.get('/api/errors').get_json()
    assert [e['id'] for e in errors] == [body['id']]


def test_report_error_rejects_unknown_type(client) -> None:
    resp = client.post('/api/errors', json={'type': 'cosmic-ray'})
    assert resp.status_code == 400


def test_actions_catalog(client) -> None:
    data = client.get('/api/actions').get_json()
    assert [a['id'] for a in data['actions']][0] == 'cache-clear'
    assert data['active'] == []


def test_execute_action(client, engine) -> None:
    resp = client.post('/api/actions/cache-clear/execute')
    assert resp.status_code in (200, 202)
    assert engine.orchestrator.wait_idle(5)

    history = client.get('/api/recovery/history').get_json()
    assert history[0]['action_id'] == 'cache-clear'
    assert history[0]['success'] is True
    assert history[0]['triggered_by'] == 'manual'

    assert client.post('/api/actions/nope/execute').status_code == 404


def test_execute_action_rejects_malformed_alert_id(client, engine) -> None:
    resp = client.post('/api/actions/cache-clear/execute', json={'alert_id': 'abc'})
    assert resp.status_code == 400
    assert resp.get_json()['status'] == 'error'
    assert client.get('/api/recovery/history').get_json() == []

    resp = client.post('/api/actions/cache-clear/execute', json={'alert_id': '1'})
    assert resp.status_code in (200, 202)
    assert engine.orchestrator.wait_idle(5)
    assert client.get('/api/recovery/history').get_json()[0]['triggered_by'] == '1'


def test_report_endpoint(client) -> None:
    report = client.get('/api/report').get_json()
    assert report['summary']['totalTests'] == 0
    assert set(report) == {'timestamp', 'summary', 'componentHealth', 'alerts', 'errors',
                           'executionHistory'}


def test_settings(client) -> None:
    assert client.get('/api/settings').get_json() == {'auto_remediate': 'false'}
    resp = client.post('/api/settings/auto_remediate', json={'value': 'true'})
    assert resp.get_json()['status'] == 'success'
    assert client.get('/api/settings').get_json() == {'auto_remediate': 'true'}
    assert client.post('/api/settings/auto_remediate', json={}).status_code == 400


def test_pause_and_resume(client, engine) -> None:
    assert client.post('/api/monitoring/pause').get_json() == {'status': 'paused'}
    assert engine.is_monitoring is False
    assert client.post('/api/monitoring/resume').get_json() == {'status': 'monitoring'}
    assert engine.is_running is True
