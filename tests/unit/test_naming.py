"""
Unit tests for artifact naming (mysqlbackup/backup/naming.py).
"""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from freezegun import freeze_time

from mysqlbackup.backup.naming import (
    ARTIFACT_SUFFIX,
    DEFAULT_NAME_PATTERN,
    artifact_filename,
    artifact_key,
    database_prefix,
    render_name,
    short_hostname
)


class TestRenderName:
    """Test placeholder substitution."""

    def test_all_placeholders(self):
        """Every supported placeholder is substituted."""
        now = datetime(2024, 3, 5, 7, 8, 9, tzinfo=timezone.utc)

        rendered = render_name('{hostname}/{db}/{date}/{time}/{timestamp}', 'shop', now, 'db01')

        assert rendered == f"db01/shop/2024-03-05/07-08-09/{int(now.timestamp())}"

    def test_repeated_placeholders(self):
        """All occurrences are replaced, not just the first."""
        now = datetime(2024, 3, 5, 7, 8, 9)

        assert render_name('{db}-{db}', 'shop', now, 'h') == 'shop-shop'

    def test_unknown_placeholder_passes_through(self):
        """Unrecognized placeholders are left as they are."""
        now = datetime(2024, 3, 5, 7, 8, 9)

        assert render_name('{db}_{env}', 'shop', now, 'h') == 'shop_{env}'

    def test_placeholder_text_in_values_is_kept(self):
        """Braces inside a substituted value are not expanded again."""
        now = datetime(2024, 3, 5, 7, 8, 9)

        rendered = render_name('{db}_{date}', 'x{date}', now, '{db}host')

        assert rendered == 'x{date}_2024-03-05'
        assert render_name('{hostname}_{db}', 'shop', now, '{db}') == '{db}_shop'

    def test_backslashes_in_values(self):
        now = datetime(2024, 3, 5, 7, 8, 9)

        assert render_name('{db}', r'a\1b', now, 'h') == r'a\1b'

    def test_pattern_without_placeholders(self):
        now = datetime(2024, 3, 5, 7, 8, 9)

        assert render_name('static', 'shop', now, 'h') == 'static'

    def test_render_is_deterministic(self):
        """Same inputs render the same name."""
        now = datetime(2024, 3, 5, 7, 8, 9)

        first = render_name(DEFAULT_NAME_PATTERN, 'shop', now, 'db01')
        second = render_name(DEFAULT_NAME_PATTERN, 'shop', now, 'db01')

        assert first == second

    def test_different_instants_render_different_time(self):
        """Two capture instants give different time and timestamp segments."""
        first = render_name('{time}|{timestamp}', 'a', datetime(2024, 3, 5, 7, 8, 9), 'h')
        second = render_name('{time}|{timestamp}', 'b', datetime(2024, 3, 5, 7, 8, 10), 'h')

        first_time, first_ts = first.split('|')
        second_time, second_ts = second.split('|')
        assert first_time != second_time
        assert first_ts != second_ts

    @freeze_time("2024-01-15 12:30:45")
    def test_default_pattern_with_current_time(self):
        """Default pattern sorts by date then time within one database."""
        rendered = render_name(DEFAULT_NAME_PATTERN, 'shop', datetime.now(), 'db01')

        assert rendered == 'db01_shop_2024-01-15_12-30-45'

    def test_default_pattern_sorts_chronologically(self):
        """Names from later instants sort after earlier ones."""
        instants = [
            datetime(2024, 1, 9, 23, 59, 59),
            datetime(2024, 1, 10, 0, 0, 0),
            datetime(2024, 12, 1, 8, 0, 0),
        ]
        names = [render_name(DEFAULT_NAME_PATTERN, 'shop', t, 'db01') for t in instants]

        assert sorted(names) == names


class TestArtifactPaths:
    """Test filename and key composition."""

    def test_artifact_filename_appends_suffix(self):
        now = datetime(2024, 3, 5, 7, 8, 9)

        filename = artifact_filename('{db}_{date}', 'shop', now, 'h')

        assert filename == 'shop_2024-03-05' + ARTIFACT_SUFFIX
        assert filename.endswith('.sql.gz')

    def test_artifact_key_layout(self):
        assert artifact_key('backups/mysql', 'shop', 'x.sql.gz') == 'backups/mysql/shop/x.sql.gz'

    def test_artifact_key_strips_extra_slashes(self):
        assert artifact_key('/backups/mysql/', 'shop', 'x.sql.gz') == 'backups/mysql/shop/x.sql.gz'

    def test_artifact_key_without_prefix(self):
        assert artifact_key('', 'shop', 'x.sql.gz') == 'shop/x.sql.gz'

    def test_database_prefix_ends_with_slash(self):
        assert database_prefix('backups/mysql', 'shop') == 'backups/mysql/shop/'

    def test_database_prefix_is_leading_segment_of_key(self):
        key = artifact_key('backups/mysql', 'shop', 'x.sql.gz')

        assert key.startswith(database_prefix('backups/mysql', 'shop'))


class TestShortHostname:
    """Test host identity."""

    @pytest.mark.parametrize('full,expected', [
        ('db01.example.com', 'db01'),
        ('db01', 'db01'),
    ])
    def test_domain_is_stripped(self, full, expected):
        with patch('mysqlbackup.backup.naming.socket.gethostname', return_value=full):
            assert short_hostname() == expected
