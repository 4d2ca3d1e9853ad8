"""CourseSwap Backend.

Course enrollment exchange for students: each student lists a course they
hold and a course they want, and the swap engine pairs mutually compatible
requests whose weekly schedules stay free of overlaps.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
