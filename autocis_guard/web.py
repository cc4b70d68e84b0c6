from flask import Flask, jsonify, request

from .system_info import check_privileges


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None


def create_app(guard) -> Flask:
    """
    Build the JSON API around an AutoCISGuard session.

    Every endpoint answers JSON; request validation failures are 400s.
    """
    app = Flask(__name__)

    @app.route('/api/status', methods=['GET'])
    def check_status():
        """Check advisory service availability and list models"""
        available = guard.client.is_available()
        models = []
        if available:
            models = [model.get('name', '') for model in guard.client.list_models()]
        return jsonify({'available': available, 'models': models})

    @app.route('/api/system-info', methods=['GET'])
    def system_info():
        return jsonify(guard.system_info)

    @app.route('/api/privileges', methods=['GET'])
    def privileges():
        return jsonify({'elevated': check_privileges()})

    @app.route('/api/scan', methods=['POST'])
    def scan():
        """Run the compliance scan and return every check result"""
        results = guard.scan()
        return jsonify({'success': True, 'results': results})

    @app.route('/api/remediation', methods=['POST'])
    def remediation():
        """Get an AI remediation suggestion for one check result"""
        check = _json_body()
        if not check or not check.get('id'):
            return jsonify({'success': False, 'error': 'Request body must be a check result with an id'}), 400
        suggestion = guard.get_remediation(check)
        return jsonify({'success': True, 'suggestion': suggestion})

    @app.route('/api/apply-fix', methods=['POST'])
    def apply_fix():
        """Apply fix commands for one check behind the safety gate"""
        data = _json_body()
        if not data:
            return jsonify({'success': False, 'error': 'Empty request'}), 400

        fix_commands = data.get('fix_commands')
        check_id = data.get('check_id')
        if not isinstance(fix_commands, list) or not check_id:
            return jsonify({'success': False, 'error': 'fix_commands (list) and check_id are required'}), 400

        check = next((c for c in guard.results if c.get('id') == check_id), {'id': check_id})
        suggestion = data.get('suggestion') if isinstance(data.get('suggestion'), dict) else {}
        suggestion = dict(suggestion, fix_commands=fix_commands)

        _, outcome = guard.apply_remediation(check, suggestion)
        return jsonify(outcome)

    @app.route('/api/report', methods=['POST'])
    def report():
        """Generate and save a compliance report"""
        data = _json_body() or {}
        checks = data.get('checks')
        if checks is not None and not isinstance(checks, list):
            return jsonify({'success': False, 'error': 'checks must be a list'}), 400

        report_doc = guard.generate_report(checks, data.get('system_info'))
        try:
            path = guard.save_report(report_doc)
        except OSError as e:
            return jsonify({'success': False, 'error': f'Could not save report: {e}', 'report': report_doc}), 500
        return jsonify({'success': True, 'path': path, 'report': report_doc})

    return app
