import argparse
import logging
from dataclasses import replace

from podprobe.app import create_app
from podprobe.config import LOG_LEVELS, Settings, configure_logging

logger = logging.getLogger('podprobe')


def main(argv=None):
    settings = Settings.from_env()
    parser = argparse.ArgumentParser(prog='podprobe', description='Diagnostic HTTP service for resource scheduling tests.')
    parser.add_argument('--host', default=settings.host, help='Address to bind to.')
    parser.add_argument('--port', type=int, default=settings.port, help='Port to listen on.')
    parser.add_argument('--log-level', type=str.upper, choices=LOG_LEVELS, default=settings.log_level,
                        help='Logging level.')
    args = parser.parse_args(argv)
    settings = replace(settings, host=args.host, port=args.port, log_level=args.log_level)

    configure_logging(settings.log_level)
    app = create_app()
    logger.info('listening on %s:%d', settings.host, settings.port)
    app.run(host=settings.host, port=settings.port, threaded=True)


if __name__ == '__main__':
    main()
