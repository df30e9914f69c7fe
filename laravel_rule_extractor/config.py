"""Runtime settings for the extractor"""

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

ENV_PREFIX = 'LARAVEL_RULES_'

_TRUE_VALUES = {'1', 'true', 'yes', 'on'}


@dataclass
class ExtractorConfig:
    """Settings shared by the analyzers"""
    fail_on_error: bool = False
    # Namespace prefix -> directory, e.g. {'App\\': 'app'}
    psr4_roots: Dict[str, str] = field(default_factory=dict)
    user_predicate_prefixes: Tuple[str, ...] = ('is', 'has', 'can')
    rules_method: str = 'rules'
    helper_method_depth: int = 3
    log_level: str = 'WARNING'

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> 'ExtractorConfig':
        """Build a config from LARAVEL_RULES_* environment variables"""
        env = os.environ if environ is None else environ
        config = cls()

        fail_on_error = env.get(ENV_PREFIX + 'FAIL_ON_ERROR')
        if fail_on_error is not None:
            config.fail_on_error = fail_on_error.strip().lower() in _TRUE_VALUES

        log_level = env.get(ENV_PREFIX + 'LOG_LEVEL')
        if log_level:
            config.log_level = log_level.strip().upper()

        # Format: App\=app;Domain\=src/Domain
        psr4 = env.get(ENV_PREFIX + 'PSR4')
        if psr4:
            for pair in psr4.split(';'):
                if '=' not in pair:
                    continue
                prefix, directory = pair.split('=', 1)
                if prefix.strip() and directory.strip():
                    config.psr4_roots[prefix.strip()] = directory.strip()

        return config

    def configure_logging(self):
        configure_logging(self.log_level)


def configure_logging(level: str = 'WARNING'):
    """Attach a basic stderr handler for command-line style callers"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format='%(levelname)s %(name)s: %(message)s',
    )
