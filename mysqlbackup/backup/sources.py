"""
MySQL source handler.

Wraps the MySQL client tools:
- mysqldump: consistent-snapshot logical export of one database
- mysql: live catalog query (SHOW DATABASES) and connection test
"""

import os
import shutil
import subprocess
import tempfile
from typing import Dict, List, Optional

from .compression import compress_stream, remove_partial, CompressionError


SYSTEM_SCHEMAS = frozenset({'information_schema', 'performance_schema', 'sys', 'mysql'})


class SourceError(Exception):
    """Raised when the database source cannot be read."""
    pass


class DumpError(SourceError):
    """Raised when dumping a single database fails."""

    def __init__(self, database: str, cause: str):
        self.database = database
        self.cause = cause
        super().__init__(f"mysqldump failed for {database}: {cause}")


class PreflightError(SourceError):
    """Raised when a required client tool is not installed."""

    def __init__(self, tool: str):
        self.tool = tool
        super().__init__(f"'{tool}' not found")


class MySQLSource:
    """
    Handler for dumping databases from a MySQL (or MariaDB) server.

    The password is handed to the client tools via MYSQL_PWD so it never
    appears in the process list.
    """

    def __init__(self, host: str = 'localhost', port: int = 3306, user: str = 'root',
                 password: str = '', mysqldump_bin: str = 'mysqldump', mysql_bin: str = 'mysql'):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.mysqldump_bin = mysqldump_bin
        self.mysql_bin = mysql_bin
        self._gtid_supported = None

    def _connection_args(self) -> List[str]:
        return [
            f'--host={self.host}',
            f'--port={self.port}',
            f'--user={self.user}',
        ]

    def _env(self) -> Dict[str, str]:
        env = os.environ.copy()
        if self.password:
            env['MYSQL_PWD'] = self.password
        return env

    def preflight(self, include_catalog: bool = False):
        """
        Verify the client tools are installed.

        Args:
            include_catalog: Also require the mysql client (needed for ALL)

        Raises:
            PreflightError: For the first missing tool
        """
        tools = [self.mysqldump_bin]
        if include_catalog:
            tools.append(self.mysql_bin)

        for tool in tools:
            if shutil.which(tool) is None:
                raise PreflightError(tool)

    def supports_gtid_purged(self) -> bool:
        """Whether this mysqldump build understands --set-gtid-purged."""
        if self._gtid_supported is None:
            try:
                result = subprocess.run(
                    [self.mysqldump_bin, '--help'],
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    text=True
                )
                self._gtid_supported = 'set-gtid-purged' in result.stdout
            except OSError:
                self._gtid_supported = False
        return self._gtid_supported

    def build_dump_command(self, database: str) -> List[str]:
        """
        Build the mysqldump command line for one database.

        --single-transaction gives a consistent InnoDB snapshot without
        locking tables; routines, triggers and events are included.
        """
        cmd = [self.mysqldump_bin] + self._connection_args() + [
            '--single-transaction',
            '--routines',
            '--triggers',
            '--events',
        ]
        if self.supports_gtid_purged():
            cmd.append('--set-gtid-purged=OFF')
        cmd.append(database)
        return cmd

    def dump(self, database: str, output_path: str) -> int:
        """
        Dump one database into a gzip file.

        Args:
            database: Database name
            output_path: Destination .sql.gz path

        Returns:
            Compressed size in bytes

        Raises:
            DumpError: If mysqldump exits non-zero or the artifact cannot be written
        """
        cmd = self.build_dump_command(database)

        with tempfile.TemporaryFile() as stderr_file:
            try:
                proc = subprocess.Popen(
                    cmd,
                    stdout=subprocess.PIPE,
                    stderr=stderr_file,
                    env=self._env()
                )
            except OSError as e:
                raise DumpError(database, str(e))

            try:
                size = compress_stream(proc.stdout, output_path)
            except CompressionError as e:
                proc.kill()
                proc.wait()
                raise DumpError(database, str(e))
            except BaseException:
                # interrupted (e.g. SIGTERM): do not leave mysqldump running
                proc.kill()
                proc.wait()
                remove_partial(output_path)
                raise
            finally:
                proc.stdout.close()

            returncode = proc.wait()
            if returncode != 0:
                remove_partial(output_path)
                stderr_file.seek(0)
                detail = stderr_file.read().decode('utf-8', errors='replace').strip()
                raise DumpError(database, detail or f"exit code {returncode}")

        return size

    def _query(self, sql: str) -> str:
        cmd = [self.mysql_bin] + self._connection_args() + [
            '--batch',
            '--skip-column-names',
            '-e', sql,
        ]
        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                env=self._env()
            )
        except OSError as e:
            raise SourceError(f"Failed to run {self.mysql_bin}: {e}")

        if result.returncode != 0:
            raise SourceError(f"Query failed ({sql}): {result.stderr.strip()}")
        return result.stdout

    def list_databases(self) -> List[str]:
        """
        List user databases from the live catalog.

        Returns:
            Database names in server order, system schemas excluded

        Raises:
            SourceError: If the catalog query fails
        """
        output = self._query('SHOW DATABASES;')
        names = []
        for line in output.splitlines():
            name = line.strip()
            if name and name not in SYSTEM_SCHEMAS:
                names.append(name)
        return names

    def test_connection(self) -> bool:
        """
        Run SELECT 1 against the server.

        Raises:
            SourceError: If the connection fails
        """
        self._query('SELECT 1;')
        return True


def parse_database_list(value: Optional[str]) -> List[str]:
    """
    Split a comma-separated database list.

    Whitespace is trimmed, empty entries dropped and duplicates removed
    keeping the first occurrence.
    """
    names = []
    for item in (value or '').split(','):
        name = item.strip()
        if name and name not in names:
            names.append(name)
    return names
