import logging
import time

from flask import Blueprint, current_app, jsonify, request

from podprobe import params
from podprobe.load import detach, run_load, submit
from podprobe.netinfo import client_ip, environment

logger = logging.getLogger(__name__)

ROUTES = '/ping /echo /ip /env /delay?ms=100 /mem?mb=10&ms=10000 /cpu?ms=1000&cores=2&percent=80'

bp = Blueprint('probe', __name__)


def reply(msg='', data=None, status=200):
    body = {'code': 0, 'msg': msg}
    if data is not None:
        body['data'] = data
    return jsonify(body), status


def _peer(environ):
    addr = environ.get('REMOTE_ADDR', '')
    port = environ.get('REMOTE_PORT')
    if ':' in addr:
        addr = f'[{addr}]'
    return f'{addr}:{port}' if port else addr


def _start(load_request):
    future = submit(run_load, load_request)
    if params.is_async(request.args):
        detach(future, load_request)
        return reply(f'accepted: {load_request.describe()}', status=202)
    return reply(future.result().message)


@bp.get('/')
def index():
    return jsonify(routes=ROUTES)


@bp.get('/ping')
def ping():
    return reply('pong')


@bp.route('/echo', methods=['GET', 'POST', 'PUT', 'PATCH', 'DELETE'])
def echo():
    headers = {}
    for name, value in request.headers.items():
        headers.setdefault(name, []).append(value)
    body = request.get_data(as_text=True) if request.method == 'POST' else ''
    return reply(data={
        'method': request.method,
        'query': request.args.to_dict(flat=False),
        'body': body,
        'headers': headers,
    })


@bp.get('/ip')
def ip():
    return reply(data=client_ip(request.headers, _peer(request.environ)))


@bp.get('/env')
def env():
    return reply(data=environment(current_app.config['START_TIME']))


@bp.get('/delay')
def delay():
    ms = params.delay_ms(request.args)
    time.sleep(ms / 1000.0)
    return reply(f'slept {ms}ms')


@bp.get('/mem')
def mem():
    return _start(params.memory_request(request.args))


@bp.get('/cpu')
def cpu():
    return _start(params.cpu_request(request.args))
