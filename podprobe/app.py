import logging
import time
from datetime import datetime

from flask import Flask, g, jsonify, request

from podprobe.routes import ROUTES, bp

logger = logging.getLogger(__name__)


def create_app(start_time=None):
    app = Flask(__name__)
    # captured once, reported by /env
    app.config['START_TIME'] = start_time or datetime.now().astimezone()
    app.register_blueprint(bp)

    @app.before_request
    def mark_start():
        g.started = time.perf_counter()

    @app.after_request
    def log_request(response):
        elapsed = (time.perf_counter() - g.get('started', time.perf_counter())) * 1000
        logger.info('%s %s %d %.1fms', request.method, request.full_path.rstrip('?'),
                    response.status_code, elapsed)
        return response

    @app.errorhandler(404)
    def not_found(_):
        return jsonify(routes=ROUTES), 404

    return app
