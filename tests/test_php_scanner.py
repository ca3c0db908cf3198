"""Tests for the PHP scanner."""

from unittest.mock import MagicMock

from valet_doctor.config import Paths
from valet_doctor.connector.shell import CommandResult, ShellConnector
from valet_doctor.scanner.php import PHPScanner, parse_ini_extensions, parse_loaded_ini_files

PATHS = Paths.from_prefix("/opt/homebrew")


class TestParsing:
    def test_parse_ini_extensions(self):
        content = (
            "[PHP]\n"
            ";extension=bz2\n"
            'extension="redis.so"\n'
            ';extension="xdebug.so"\n'
            '  zend_extension="/opt/homebrew/lib/php/opcache.so"\n'
            "memory_limit = 256M\n"
        )
        extensions = parse_ini_extensions("/etc/php.ini", content)

        assert [(e.name, e.enabled, e.zend, e.line_number) for e in extensions] == [
            ("redis", True, False, 3),
            ("xdebug", False, False, 4),
            ("opcache", True, True, 5),
        ]

    def test_parse_loaded_ini_files(self):
        output = (
            "Configuration File (php.ini) Path: /opt/homebrew/etc/php/8.2\n"
            "Loaded Configuration File:         /opt/homebrew/etc/php/8.2/php.ini\n"
            "Scan for additional .ini files in: /opt/homebrew/etc/php/8.2/conf.d\n"
            "Additional .ini files parsed:      /opt/homebrew/etc/php/8.2/conf.d/ext-opcache.ini,\n"
            "/opt/homebrew/etc/php/8.2/conf.d/ext-redis.ini\n"
        )
        assert parse_loaded_ini_files(output) == [
            "/opt/homebrew/etc/php/8.2/php.ini",
            "/opt/homebrew/etc/php/8.2/conf.d/ext-opcache.ini",
            "/opt/homebrew/etc/php/8.2/conf.d/ext-redis.ini",
        ]

    def test_parse_loaded_ini_files_none(self):
        output = (
            "Loaded Configuration File:         (none)\n"
            "Additional .ini files parsed:      (none)\n"
        )
        assert parse_loaded_ini_files(output) == []


class TestScanner:
    def test_full_scan(self, fake_brew):
        result = PHPScanner(fake_brew, PATHS).scan()

        assert result.brew_php_version == "8.3"
        assert result.available_versions == ["8.1", "8.2", "8.3"]
        active = result.active
        assert active.version.long == "8.2.7"
        assert active.limits.memory_limit == "128M"
        assert active.limits.upload_max_filesize == "2M"
        assert {e.name: e.enabled for e in active.extensions} == {
            "redis": True,
            "xdebug": False,
            "opcache": True,
        }
        assert active.fpm_configured

    def test_brew_version_override(self, fake_brew):
        scanner = PHPScanner(fake_brew, PATHS, brew_php_version="8.2")
        assert scanner.detect_brew_php_version() == "8.2"

    def test_brew_version_picks_newest_cellar_entry_numerically(self):
        shell = MagicMock(spec=ShellConnector)
        shell.list_dir.return_value = ["8.10.1", "8.9.12_1", "8.9.2"]

        assert PHPScanner(shell, PATHS).detect_brew_php_version() == "8.10"
        shell.run.assert_not_called()

    def test_brew_version_from_opt_php_when_cellar_empty(self):
        shell = MagicMock(spec=ShellConnector)
        shell.list_dir.return_value = []
        shell.run.return_value = CommandResult("php -v", "PHP 8.4.1 (cli)\n", "", 0)

        assert PHPScanner(shell, PATHS).detect_brew_php_version() == "8.4"
        shell.run.assert_called_once_with("/opt/homebrew/opt/php/bin/php -v")

    def test_versions_require_binary(self):
        shell = MagicMock(spec=ShellConnector)
        shell.list_dir.return_value = ["php", "php@7.4", "php@8.10", "php@8.2", "phpmyadmin"]
        shell.file_exists.side_effect = lambda path: "php@7.4" not in path

        versions = PHPScanner(shell, PATHS).detect_versions(brew_php_version="8.3")

        assert versions == ["8.2", "8.3", "8.10"]

    def test_broken_link_sets_error(self, fake_brew):
        fake_brew.linked = None
        active = PHPScanner(fake_brew, PATHS).probe_active()
        assert active.error
        assert active.version is None

    def test_unparseable_version_sets_error(self):
        shell = MagicMock(spec=ShellConnector)
        shell.run.return_value = CommandResult("php -v", "dyld: Library not loaded\n", "", 0)
        assert PHPScanner(shell, PATHS).probe_active().error
