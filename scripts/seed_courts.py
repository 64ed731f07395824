#!/usr/bin/env python3
"""
Seed bookable courts and their weekly availability windows.

Reads courtside/seed/courts.csv. Idempotent: courts that already exist
(matched by name) are left untouched.
"""

import asyncio
import os
import sys

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)

from courtside.database.seed_courts import main


if __name__ == "__main__":
    asyncio.run(main())
