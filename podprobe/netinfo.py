import os

ENV_KEYS = ('POD_NAME', 'NODE_NAME', 'VERSION')


def peer_host(peer):
    """Host part of a ``host:port`` peer address; ``[v6]:port`` is unwrapped."""
    if peer.startswith('[') and ']' in peer:
        return peer[1:peer.index(']')]
    return peer.rsplit(':', 1)[0]


def client_ip(headers, peer):
    # proxy headers win over the transport peer
    forwarded = headers.get('X-Forwarded-For', '')
    if forwarded:
        return forwarded.split(',')[0].strip()
    real_ip = headers.get('X-Real-Ip', '')
    if real_ip:
        return real_ip
    return peer_host(peer)


def environment(start_time):
    env = {key: os.getenv(key, '') for key in ENV_KEYS}
    env['START_TIME'] = start_time.isoformat(timespec='seconds')
    return env
