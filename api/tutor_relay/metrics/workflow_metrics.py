"""Prometheus metrics for the question review workflow.

Provides observability into:
- Answer generation outcomes (primary request, simplified request, fallback)
- Review lifecycle transitions
- Side-effect outcomes after approval (card update, delivery, archival)
- Events dropped to the dead-letter log
"""

from prometheus_client import Counter, Histogram

answer_generation_total = Counter(
    "tutor_answer_generation_total",
    "Answers produced, by the strategy that produced them",
    ["source"],  # primary, simplified, fallback
)

answer_attempt_failures_total = Counter(
    "tutor_answer_attempt_failures_total",
    "Failed calls to the answer service",
    ["stage"],  # primary, simplified
)

review_lifecycle_total = Counter(
    "tutor_review_lifecycle_total",
    "Question workflow state transitions",
    ["action"],  # created, temp_created, card_posted, edit_requested, approved, edited, duplicate
)

side_effect_total = Counter(
    "tutor_side_effect_total",
    "Outcomes of post-approval side effects",
    ["target", "outcome"],  # target: review_card, student, archive
)

dead_letter_total = Counter(
    "tutor_dead_letter_total",
    "Events recorded in the dead-letter log",
    ["reason"],
)

review_latency_seconds = Histogram(
    "tutor_review_latency_seconds",
    "Time from record creation to reviewer approval",
    buckets=[60, 300, 600, 1800, 3600, 7200, 14400, 43200, 86400],
)

fallback_answers_total = Counter(
    "tutor_fallback_answers_total",
    "Canned fallback answers served, by keyword category",
    ["category"],  # mathematics, physics, chemistry, generic
)
