#!/usr/bin/env python3
"""One-shot backup runner (for cron or a systemd oneshot unit)"""
import sys
from mysqlbackup.cli import main

if __name__ == '__main__':
    sys.exit(main())
