import logging
import os
from dataclasses import dataclass

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_LEVELS = ('CRITICAL', 'ERROR', 'WARNING', 'INFO', 'DEBUG')


@dataclass(frozen=True)
class Settings:
    host: str = '0.0.0.0'
    port: int = 8080
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls):
        # bad values fall back like bad query parameters do
        try:
            port = int(os.getenv('PORT', '8080'))
        except ValueError:
            port = cls.port
        log_level = os.getenv('LOG_LEVEL', 'INFO').strip().upper()
        if log_level not in LOG_LEVELS:
            log_level = cls.log_level
        return cls(host=os.getenv('HOST', '0.0.0.0'), port=port, log_level=log_level)


def configure_logging(level='INFO'):
    logging.basicConfig(level=level, format=LOG_FORMAT)
    # request lines are logged by the app itself
    logging.getLogger('werkzeug').setLevel(logging.ERROR)
