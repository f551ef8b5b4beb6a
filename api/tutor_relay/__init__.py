"""Student Tutor Relay: AI-drafted answers to student questions, reviewed by teachers."""
