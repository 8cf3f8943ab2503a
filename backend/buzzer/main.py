from datetime import datetime, timezone
import time

from flask import Blueprint, jsonify

main = Blueprint('main', __name__)

_started_at = time.monotonic()


@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the buzzer server!'})


@main.route('/health')
def health():
    return jsonify({
        'status': 'healthy',
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'uptimeSeconds': round(time.monotonic() - _started_at, 3),
    })
