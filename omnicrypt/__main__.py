"""SPDX-License-Identifier: GPL-3.0-only"""

from .cli import main

raise SystemExit(main())
