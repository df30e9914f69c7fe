"""Tests for the diagnostics collector and configuration"""

import logging
from unittest.mock import MagicMock

import pytest

from laravel_rule_extractor.config import ExtractorConfig
from laravel_rule_extractor.diagnostics import DiagnosticsCollector
from laravel_rule_extractor.exceptions import AnalysisError, RuleExtractionError


class TestDiagnosticsCollector:

    def test_report(self):
        collector = DiagnosticsCollector()
        collector.add_warning('RulesExtractor', 'Spread skipped', {'error_type': 'unresolved_spread'})
        collector.add_error('ASTReader', 'Broken source', {'error_type': 'parse_error', 'file_path': 'a.php'})

        report = collector.generate_report()
        assert report['summary']['total_errors'] == 1
        assert report['summary']['total_warnings'] == 1
        assert report['errors'][0]['context'] == 'ASTReader'
        assert report['errors'][0]['metadata']['file_path'] == 'a.php'
        assert report['warnings'][0]['severity'] == 'warning'
        assert len(collector) == 2

    def test_by_error_type_and_clear(self):
        collector = DiagnosticsCollector()
        collector.add_warning('X', 'one', {'error_type': 'a'})
        collector.add_warning('X', 'two', {'error_type': 'b'})
        collector.add_warning('X', 'three', {'error_type': 'a'})
        assert [e.message for e in collector.by_error_type('a')] == ['one', 'three']
        assert collector.has_warnings() and not collector.has_errors()

        collector.clear()
        assert len(collector) == 0
        assert collector.generate_report()['errors'] == []

    def test_fail_on_error(self):
        collector = DiagnosticsCollector(fail_on_error=True)
        collector.add_warning('X', 'only a warning')
        with pytest.raises(AnalysisError) as exc_info:
            collector.add_error('ASTReader', 'Broken source', {'error_type': 'parse_error'})

        assert isinstance(exc_info.value, RuleExtractionError)
        assert exc_info.value.context == 'ASTReader'
        assert exc_info.value.metadata['error_type'] == 'parse_error'
        # the entry is kept even though the call raised
        assert collector.has_errors()

    def test_entries_are_logged(self, caplog):
        collector = DiagnosticsCollector()
        with caplog.at_level(logging.WARNING, logger='laravel_rule_extractor.diagnostics'):
            collector.add_warning('EnumRegistry', 'Enum file missing')
            collector.add_error('ASTReader', 'Broken source')

        levels = [record.levelname for record in caplog.records]
        assert levels == ['WARNING', 'ERROR']
        assert 'Enum file missing' in caplog.records[0].getMessage()


class TestExtractorConfig:

    def test_defaults(self):
        config = ExtractorConfig()
        assert config.fail_on_error is False
        assert config.rules_method == 'rules'
        assert config.user_predicate_prefixes == ('is', 'has', 'can')
        assert config.psr4_roots == {}

    def test_from_env(self):
        config = ExtractorConfig.from_env({
            'LARAVEL_RULES_FAIL_ON_ERROR': 'yes',
            'LARAVEL_RULES_LOG_LEVEL': 'debug',
            'LARAVEL_RULES_PSR4': 'App\\=app; Domain\\=src/Domain;broken',
        })
        assert config.fail_on_error is True
        assert config.log_level == 'DEBUG'
        assert config.psr4_roots == {'App\\': 'app', 'Domain\\': 'src/Domain'}

    def test_configure_logging_uses_log_level(self, monkeypatch):
        basic_config = MagicMock()
        monkeypatch.setattr(logging, 'basicConfig', basic_config)

        ExtractorConfig.from_env({'LARAVEL_RULES_LOG_LEVEL': 'debug'}).configure_logging()
        assert basic_config.call_args.kwargs['level'] == logging.DEBUG

        ExtractorConfig(log_level='nonsense').configure_logging()
        assert basic_config.call_args.kwargs['level'] == logging.WARNING

    def test_from_env_reads_os_environ(self, monkeypatch):
        monkeypatch.setenv('LARAVEL_RULES_FAIL_ON_ERROR', 'off')
        monkeypatch.delenv('LARAVEL_RULES_PSR4', raising=False)
        config = ExtractorConfig.from_env()
        assert config.fail_on_error is False
        assert config.psr4_roots == {}
