"""Campaign assignment sync backend.

Keeps per-user assignment copies of assessment campaigns in step with the
site, school, class and cohort hierarchy they target.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
