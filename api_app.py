import atexit
import logging

from flask import Flask, jsonify, request

from selfheal import config
from selfheal.config import EngineConfig
from selfheal.engine import MonitoringEngine
from selfheal.error_handling import configure_logging
from selfheal.models import ErrorSeverity, ErrorType, ExecutionStatus, to_dict

logger = logging.getLogger(__name__)


def create_app(engine: MonitoringEngine) -> Flask:
    app = Flask(__name__)
    app.config['ENGINE'] = engine

    def not_found(message):
        return jsonify({'status': 'error', 'message': message}), 404

    @app.route('/api/health')
    def api_health():
        sample = engine.latest_sample()
        return jsonify({
            'sample': to_dict(sample) if sample else None,
            'stale': engine.sampler.stale,
            'components': [to_dict(h) for h in engine.component_health()],
            'overall_uptime': engine.health.overall_uptime(),
        })

    @app.route('/api/metrics/history')
    def api_metrics_history():
        # Persisted history when a database is configured, else the in-memory window
        if engine.db:
            return jsonify(engine.db.get_metrics_history(limit=60))
        return jsonify([to_dict(s) for s in engine.sampler.samples()])

    @app.route('/api/alerts')
    def api_alerts():
        return jsonify([to_dict(a) for a in engine.active_alerts()])

    @app.route('/api/alerts/critical')
    def api_critical_alerts():
        return jsonify([to_dict(a) for a in engine.critical_active()])

    @app.route('/api/alerts/<int:alert_id>/acknowledge', methods=['POST'])
    def acknowledge_alert(alert_id):
        alert = engine.acknowledge(alert_id)
        if alert is None:
            return not_found(f"Alert {alert_id} not found")
        return jsonify(to_dict(alert))

    @app.route('/api/alerts/<int:alert_id>/resolve', methods=['POST'])
    def resolve_alert(alert_id):
        alert = engine.resolve(alert_id)
        if alert is None:
            return not_found(f"Alert {alert_id} not found")
        return jsonify(to_dict(alert))

    @app.route('/api/rules')
    def api_rules():
        return jsonify([to_dict(r) for r in engine.rule_engine.rules()])

    @app.route('/api/rules/<rule_id>/toggle', methods=['POST'])
    def toggle_rule(rule_id):
        rule = engine.toggle_rule(rule_id)
        if rule is None:
            return not_found(f"Rule {rule_id} not found")
        return jsonify(to_dict(rule))

    @app.route('/api/errors', methods=['GET', 'POST'])
    def handle_errors():
        if request.method == 'POST':
            data = request.get_json(silent=True) or {}
            try:
                error_type = ErrorType(data.get('type', 'client'))
                severity = ErrorSeverity(data.get('severity', 'medium'))
            except ValueError as e:
                return jsonify({'status': 'error', 'message': str(e)}), 400
            event = engine.report_error(
                error_type, severity,
                message=data.get('message', 'Unknown error occurred'),
                component=data.get('component'),
                session_id=data.get('session_id'),
                stack=data.get('stack'),
            )
            return jsonify(to_dict(event)), 201
        return jsonify([to_dict(e) for e in engine.error_log.all_errors()])

    @app.route('/api/actions')
    def api_actions():
        return jsonify({
            'actions': [a.to_dict() for a in engine.registry.actions()],
            'active': engine.orchestrator.active_recoveries(),
        })

    @app.route('/api/actions/<action_id>/execute', methods=['POST'])
    def execute_action(action_id):
        data = request.get_json(silent=True) or {}
        alert_id = data.get('alert_id')
        if alert_id is not None:
            try:
                alert_id = int(alert_id)
            except (TypeError, ValueError):
                return jsonify({'status': 'error', 'message': f"Invalid alert_id: {alert_id!r}"}), 400
        try:
            future = engine.execute_action(action_id, error_id=data.get('error_id'), alert_id=alert_id)
        except KeyError:
            return not_found(f"Action {action_id} not found")
        if future.done():
            record = future.result()
            code = 409 if record.status == ExecutionStatus.REJECTED else 200
            return jsonify({'status': record.status.value, 'record': record.to_dict()}), code
        return jsonify({'status': 'started', 'action_id': action_id}), 202

    @app.route('/api/recovery/history')
    def api_recovery_history():
        return jsonify([r.to_dict() for r in engine.recovery_history()])

    @app.route('/api/report')
    def api_report():
        return jsonify(engine.export_report())

    @app.route('/api/monitoring/pause', methods=['POST'])
    def pause_monitoring():
        engine.pause()
        return jsonify({'status': 'paused'})

    @app.route('/api/monitoring/resume', methods=['POST'])
    def resume_monitoring():
        engine.resume()
        return jsonify({'status': 'monitoring'})

    @app.route('/api/settings', methods=['GET'])
    def get_settings():
        return jsonify(engine.get_settings())

    @app.route('/api/settings/<key>', methods=['POST'])
    def update_setting(key):
        val = (request.get_json(silent=True) or {}).get('value')
        if val is not None:
            engine.update_setting(key, str(val))
            return jsonify({'status': 'success', 'key': key, 'value': val})
        return jsonify({'status': 'error', 'message': 'No value provided'}), 400

    return app


def main():
    configure_logging(getattr(config, 'LOG_FILE', None), getattr(config, 'LOG_LEVEL', 'INFO'))
    engine = MonitoringEngine.from_config(EngineConfig.from_module(config))
    engine.start()
    atexit.register(lambda: engine.stop(wait=False))

    app = create_app(engine)
    logger.info("Self-healing monitor started")
    app.run(host='0.0.0.0', port=5000)


if __name__ == '__main__':
    main()
