"""
Web server for Janitarr.
JSON API for status, manual cycles, activity logs and configuration.
"""

from flask import Flask, jsonify, request

from .. import __version__
from ..errors import ConfigError, SchedulerBusyError, SchedulerStoppedError


class WebServer:
    """Flask web server."""

    def __init__(self, app_core):
        self.core = app_core
        self.config = app_core.config
        self.log = app_core.logger.get_logger('web')

        self.app = Flask(__name__)

        self._register_api()

    def _register_api(self):
        """Register API endpoints."""

        # ============ Status ============
        @self.app.route('/api/health')
        def api_health():
            return jsonify({'status': 'ok', 'version': __version__})

        @self.app.route('/api/status')
        def api_status():
            return jsonify(self.core.get_status())

        # ============ Automation ============
        @self.app.route('/api/automation/status')
        def api_automation_status():
            status = self.core.scheduler.get_status().to_dict()
            status['seconds_until_next_run'] = int(
                self.core.scheduler.time_until_next_run().total_seconds())
            return jsonify(status)

        @self.app.route('/api/automation/trigger', methods=['POST'])
        def api_trigger():
            data = request.get_json(silent=True) or {}
            dry_run = data.get('dryRun')
            if dry_run is not None and not isinstance(dry_run, bool):
                return jsonify({'success': False, 'message': 'dryRun must be a boolean'}), 400
            try:
                result = self.core.run_manual_cycle(dry_run=dry_run)
            except SchedulerBusyError as e:
                return jsonify({'success': False, 'message': str(e)}), 409
            except SchedulerStoppedError as e:
                return jsonify({'success': False, 'message': str(e)}), 503
            return jsonify({'success': result.success, 'result': result.to_dict()})

        # ============ Logs ============
        @self.app.route('/api/logs', methods=['GET'])
        def api_logs():
            limit = request.args.get('limit', 100, type=int)
            entry_type = request.args.get('type')
            server = request.args.get('server')
            return jsonify(self.core.get_logs(limit, entry_type, server))

        @self.app.route('/api/logs', methods=['DELETE'])
        def api_clear_logs():
            self.core.clear_logs()
            return jsonify({'success': True})

        # ============ Config ============
        @self.app.route('/api/config', methods=['GET'])
        def api_get_config():
            return jsonify(self.config.to_dict())

        @self.app.route('/api/config', methods=['POST'])
        def api_save_config():
            data = request.get_json(silent=True)
            if not isinstance(data, dict):
                return jsonify({'success': False, 'message': 'Expected a JSON object'}), 400
            try:
                self.core.update_config(data)
            except ConfigError as e:
                return jsonify({'success': False, 'message': str(e)}), 400
            return jsonify({'success': True})

        # ============ Servers ============
        @self.app.route('/api/servers')
        def api_servers():
            return jsonify({'servers': [s.to_dict(redact=True)
                                        for s in self.config.list_servers()]})

        @self.app.route('/api/servers/<server_id>/test', methods=['POST'])
        def api_test_server(server_id):
            if self.config.get_server(server_id) is None:
                return jsonify({'success': False,
                                'message': f'Server not found: {server_id}'}), 404
            return jsonify(self.core.test_server(server_id))

    def run(self, host: str = '0.0.0.0', port: int = 8080, debug: bool = False):
        """Start the server."""
        self.log.info(f"Starting web server on {host}:{port}")
        self.app.run(host=host, port=port, debug=debug, threaded=True,
                     use_reloader=False)
