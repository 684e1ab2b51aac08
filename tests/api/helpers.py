"""Request headers shared by the API tests.

Identity travels in headers: X-User-Id is required and X-User-Role defaults
to STUDENT when omitted.
"""

STUDENT = {"X-User-Id": "student-1"}
OTHER_STUDENT = {"X-User-Id": "student-2"}
SUPERVISOR = {"X-User-Id": "supervisor-1", "X-User-Role": "SUPERVISOR"}
