"""Channel adapters.

- messaging: the student-facing channel (Telegram)
- review: the teacher-facing review channel (Slack)
"""
